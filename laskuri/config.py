# Settings for the pricing backend, loaded from LASKURI_* env vars or .env
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(extra="ignore", env_file=".env", env_prefix="LASKURI_")

    # Preferences always live here; data too unless a custom path is chosen
    APP_DATA_DIR: Path = Path("user_data") / "laskuri_data"

    CUSTOMERS_FILENAME: str = "customers.json"
    CALCULATIONS_FILENAME: str = "calculations.json"
    PREFS_FILENAME: str = "storage_prefs.json"

    DEFAULT_VAT_RATE: float = 0.24

    LOG_LEVEL: str = "INFO"

    HOST: str = "127.0.0.1"
    PORT: int = 8000


settings = Settings()
