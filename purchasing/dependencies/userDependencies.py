from typing import Annotated
from fastapi import Depends
from purchasing.modules.auth.dependencies import get_auth_context
from purchasing.modules.auth.schemas import AuthContext

user_dependency = Annotated[AuthContext, Depends(get_auth_context)]
