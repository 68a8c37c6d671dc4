"""
Socios que pueden adelantar pagos de su bolsillo (compras personales)
"""
from sqlalchemy import Column, String

from purchasing.database.database import Base
from purchasing.common.mixins import BaseMixin


class Partner(Base, BaseMixin):
    __tablename__ = "partners"

    name = Column(String(200), nullable=False, index=True)
    partner_number = Column(String(20), nullable=True, unique=True)
    email = Column(String(100), nullable=True)
