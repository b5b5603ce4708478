# cas_core/config.py
import os
import logging
from typing import Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load variables from .env file located in the project root directory
dotenv_path = os.path.join(os.path.dirname(os.path.dirname(__file__)), '.env')
if os.path.exists(dotenv_path):
    load_dotenv(dotenv_path=dotenv_path)
else:
    load_dotenv() # Fallback

LOG_FORMAT = '%(asctime)s - %(name)s - [%(levelname)s] - %(message)s'

logger = logging.getLogger("CAS_Core")


class Settings(BaseSettings):
    """Loads configuration settings from environment variables and .env file.

    Settings are frozen: a client is built from one Settings object and the
    configuration never changes underneath it.
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore',
        frozen=True,
    )

    # --- Filebase / IPFS Backend ---
    FILEBASE_API_KEY: Optional[str] = None
    FILEBASE_SECRET_KEY: Optional[str] = None
    FILEBASE_BUCKET: str = "cas-data-bucket"
    FILEBASE_API_URL: str = "https://api.filebase.io"
    FILEBASE_GATEWAY: str = "https://ipfs.filebase.io/ipfs/"

    # --- Network Timeouts (seconds) ---
    UPLOAD_TIMEOUT_SECONDS: float = 30.0
    DOWNLOAD_TIMEOUT_SECONDS: float = 10.0

    # --- Retry Policy (applied by StorageClient, never by the adapter) ---
    BACKEND_MAX_ATTEMPTS: int = 1
    BACKEND_RETRY_DELAY_SECONDS: float = 0.5

    # --- Offline / Fallback Mode ---
    FALLBACK_LATENCY_ENABLED: bool = True
    FALLBACK_UPLOAD_LATENCY_MIN: float = 1.0
    FALLBACK_UPLOAD_LATENCY_MAX: float = 3.0
    FALLBACK_DOWNLOAD_LATENCY_MIN: float = 0.5
    FALLBACK_DOWNLOAD_LATENCY_MAX: float = 1.5
    TAG_INDEX_PATH: Optional[str] = None # In-memory only when unset

    # --- Envelope ---
    ENVELOPE_VERSION: str = "1.0"

    LOG_LEVEL: str = "INFO"

    @property
    def has_credentials(self) -> bool:
        """Both key and secret must be present to talk to the real backend."""
        return bool(self.FILEBASE_API_KEY) and bool(self.FILEBASE_SECRET_KEY)


def get_settings(**overrides) -> Settings:
    """Build a fresh Settings object. Keyword overrides win over the environment."""
    return Settings(**overrides)


def setup_logging(level: Optional[str] = None) -> None:
    log_level_str = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_level = getattr(logging, log_level_str, logging.INFO)
    logging.basicConfig(level=log_level, format=LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')
    logging.getLogger("httpx").setLevel(logging.WARNING); logging.getLogger("httpcore").setLevel(logging.WARNING)
    logger.info(f"Core logging configured. Log Level: {log_level_str}")


def log_settings_summary(settings: Settings) -> None:
    """Logs the effective storage mode and warns about half-configured credentials."""
    if settings.has_credentials:
        logger.info(f"Filebase credentials configured. Using bucket: {settings.FILEBASE_BUCKET}")
    elif settings.FILEBASE_API_KEY or settings.FILEBASE_SECRET_KEY:
        logger.warning("Only one of FILEBASE_API_KEY / FILEBASE_SECRET_KEY is set. Running in offline mode.")
    else:
        logger.info("No Filebase credentials configured. Running in offline (fallback) mode.")
    logger.info(f"Gateway: {settings.FILEBASE_GATEWAY}")
    logger.info(f"Timeouts: upload={settings.UPLOAD_TIMEOUT_SECONDS}s, download={settings.DOWNLOAD_TIMEOUT_SECONDS}s, attempts={settings.BACKEND_MAX_ATTEMPTS}")
    if settings.TAG_INDEX_PATH:
        logger.info(f"Fallback tag index persisted at: {settings.TAG_INDEX_PATH}")
