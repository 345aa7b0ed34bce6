import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent


@dataclass(frozen=True)
class Settings:
    device_store_path: str
    repository_timeout: float

    system_device_address: str
    system_device_name: str
    alert_dedup_minutes: int

    ping_count: int
    ping_timeout: int

    log_level: str
    host: str
    port: int


def get_settings() -> Settings:
    # .env is optional; real environment variables always win.
    env_file = os.getenv("HEALTH_ENV_FILE", str(BASE_DIR / ".env"))
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    return Settings(
        device_store_path=os.getenv("DEVICE_STORE_PATH", str(BASE_DIR / "data" / "devices.json")),
        repository_timeout=float(os.getenv("REPOSITORY_TIMEOUT", "5")),
        system_device_address=os.getenv("SYSTEM_DEVICE_ADDRESS", "system"),
        system_device_name=os.getenv("SYSTEM_DEVICE_NAME", "NMS Server"),
        alert_dedup_minutes=int(os.getenv("ALERT_DEDUP_MINUTES", "30")),
        ping_count=int(os.getenv("PING_COUNT", "1")),
        ping_timeout=int(os.getenv("PING_TIMEOUT", "1")),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
    )
