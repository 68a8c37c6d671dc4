from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List
from datetime import date
from decimal import Decimal
from pydantic import field_validator

class Settings(BaseSettings):
    # Database settings
    DATABASE_URL: Optional[str] = None  # Sobrescribe POSTGRES_* (ej. sqlite:// en tests)
    POSTGRES_USER: str = 'purchasing_user'
    POSTGRES_PASSWORD: str = 'purchasing_pass'
    POSTGRES_DB: str = 'purchasing_db'
    POSTGRES_HOST: str = 'postgres'
    POSTGRES_PORT: int = 5432

    # Pricing & settlement
    DEFAULT_TAX_RATE: Decimal = Decimal('21')
    OVERAGE_TOLERANCE: Decimal = Decimal('0.01')
    CURRENCY: str = 'EUR'

    # Fecha hasta la que el periodo contable está cerrado (inclusive)
    ACCOUNTING_CLOSED_UNTIL: Optional[date] = None

    # Roles con privilegios elevados (aprobar, anular, borrar pagos)
    PRIVILEGED_ROLES: List[str] = ["admin"]

    # Pagination
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("DEBUG", mode="before")
    @classmethod
    def parse_debug(cls, v):
        if isinstance(v, str):
            return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
        return bool(v)

    @field_validator("ACCOUNTING_CLOSED_UNTIL", mode="before")
    @classmethod
    def parse_closed_until(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

settings = Settings()
