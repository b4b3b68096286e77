from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    PROJECT_NAME: str = "API freight booking"
    DATABASE_URL: str = "sqlite:///./freight.db"

    # Logs
    LOG_DIR: str = "/logs"
    LOG_JSON: bool = False
    LOG_TO_FILE: bool = False

    # Referencias públicas de reserva: FB-20250101-XXXXXXXX
    BOOKING_REFERENCE_PREFIX: str = "FB"

    # Valores por defecto al publicar tarifas
    DEFAULT_CURRENCY: str = "PHP"
    DEFAULT_DECIMAL_PLACES: int = 2
    DEFAULT_STANDARD_HOURS: float = 8.0
    DEFAULT_PEAK_HOURS: List[List[int]] = [[7, 9], [17, 19]]


settings = Settings()
