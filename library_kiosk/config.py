# =======================================================================================
# library_kiosk/config.py - Configuration Management
# =======================================================================================
import os
from typing import Optional
from dotenv import load_dotenv

load_dotenv()

def _env_int(name: str) -> Optional[int]:
    """Helper to parse integer environment variables."""
    v = os.getenv(name)
    return int(v) if v and v.isdigit() else None

def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"

class Config:
    # Database
    DB_URL: str = os.getenv("DB_URL", "sqlite:///./data/library_kiosk.db")

    # API Settings
    API_DEBUG: bool = _env_bool("API_DEBUG")
    API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
    API_PORT: int = int(os.getenv("API_PORT", "8000"))

    # Serial Communication
    SERIAL_ENABLED: bool = _env_bool("SERIAL_ENABLED", "true")
    SERIAL_PORT: str = os.getenv("SERIAL_PORT", "/dev/ttyACM0")
    SERIAL_BAUD: int = int(os.getenv("SERIAL_BAUD", "115200"))
    SERIAL_TIMEOUT: int = int(os.getenv("SERIAL_TIMEOUT", "1"))

    # Kiosk identity, stamped on every loan and transaction
    DEVICE_ID: str = os.getenv("DEVICE_ID", "web-kiosk")

    # Database Connection Pool
    DB_POOL_SIZE: int = int(os.getenv("DB_POOL_SIZE", "10"))
    DB_MAX_OVERFLOW: int = int(os.getenv("DB_MAX_OVERFLOW", "20"))

    # Loan Policy
    LOAN_DAYS_DEFAULT: int = int(os.getenv("LOAN_DAYS_DEFAULT", "14"))
    LOAN_DAYS_MIN: int = int(os.getenv("LOAN_DAYS_MIN", "1"))
    LOAN_DAYS_MAX: int = int(os.getenv("LOAN_DAYS_MAX", "365"))
    MAX_ACTIVE_LOANS: int = int(os.getenv("MAX_ACTIVE_LOANS", "3"))
    DUE_SOON_DAYS: int = int(os.getenv("DUE_SOON_DAYS", "2"))

    # Sync Settings
    SYNC_ENABLED: bool = _env_bool("SYNC_ENABLED", "true")
    SYNC_INTERVAL: float = float(os.getenv("SYNC_INTERVAL", "10"))
    SYNC_BATCH_LIMIT: Optional[int] = _env_int("SYNC_BATCH_LIMIT")

    # Remote reconciliation endpoint (REST upsert) or central database
    REMOTE_URL: Optional[str] = os.getenv("REMOTE_URL") or None
    REMOTE_API_KEY: Optional[str] = os.getenv("REMOTE_API_KEY") or None
    REMOTE_TABLE: str = os.getenv("REMOTE_TABLE", "transactions")
    REMOTE_STATUS_PATH: str = os.getenv("REMOTE_STATUS_PATH", "/status")
    REMOTE_DB_URL: Optional[str] = os.getenv("REMOTE_DB_URL") or None
    REMOTE_TIMEOUT: float = float(os.getenv("REMOTE_TIMEOUT", "5"))

config = Config()
