# orderbridge/config.py
import json
from pathlib import Path
from typing import Literal, Optional

from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError, LedgerError

GOOGLE_SHEETS_SCOPE = "https://www.googleapis.com/auth/spreadsheets"


class Settings(BaseSettings):
    """Process configuration, loaded once at startup and handed to each component.

    Every field is read from the env var of the same name (``SPREADSHEET_ID``,
    ``RAZORPAY_KEY_ID``, ...) or from a ``.env`` file; empty values keep the default.
    """

    model_config = SettingsConfigDict(env_file=".env", env_ignore_empty=True, extra="ignore")

    host: str = "0.0.0.0"
    port: int = 3000

    # Ledger (Google Sheets)
    spreadsheet_id: str = ""
    sheet_name: str = "Sheet1"
    google_credentials_json: Optional[str] = None
    google_credentials_file: str = "google-credentials.json"

    # Gateway (Razorpay)
    razorpay_key_id: str = ""
    razorpay_key_secret: str = ""
    razorpay_base_url: str = "https://api.razorpay.com/v1"
    webhook_secret: str = ""
    currency: str = "INR"

    product_name: str = "Comfortable Shoes for winter"

    tracking_id_strategy: Literal["random", "sequential"] = "random"
    tracking_id_prefix: str = "SPL"
    tracking_id_start_batch: int = 351
    tracking_id_random_length: int = 8

    http_timeout: float = 10.0
    http_max_retries: int = 3

    log_level: str = "INFO"
    # comma separated
    cors_origins: str = "*"

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @classmethod
    def from_env(cls, env_file: Optional[str] = ".env") -> "Settings":
        try:
            return cls(_env_file=env_file)
        except PydanticValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e


def load_service_account_info(settings: Settings) -> dict:
    """Return the parsed service-account JSON, inline value first, then the file."""
    try:
        if settings.google_credentials_json:
            return json.loads(settings.google_credentials_json)
        path = Path(settings.google_credentials_file)
        if not path.is_file():
            raise LedgerError(f"Ledger credentials file not found: {path}")
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise LedgerError(f"Ledger credentials are not valid JSON: {e}") from e
