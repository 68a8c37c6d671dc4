from pydantic import BaseModel
from typing import List

from purchasing.core.config import settings


class AuthContext(BaseModel):
    """Identidad del usuario tal como llega del gateway"""
    user_id: str
    roles: List[str] = []

    @property
    def is_privileged(self) -> bool:
        return any(role in settings.PRIVILEGED_ROLES for role in self.roles)
