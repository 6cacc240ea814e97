import os
from datetime import date, datetime
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from zoneinfo import ZoneInfo


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        fx_provider: str,
        fx_timeout_secs: float,
        fx_fallback_rate: Decimal,
        default_period: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.fx_provider = fx_provider
        self.fx_timeout_secs = fx_timeout_secs
        self.fx_fallback_rate = fx_fallback_rate
        self.default_period = default_period


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("NETWORTH_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "networth.db"
    database_url = os.getenv("NETWORTH_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("NETWORTH_TIMEZONE", "America/Toronto")
    fx_provider = os.getenv("NETWORTH_FX_PROVIDER", "frankfurter")
    fx_timeout_secs = float(os.getenv("NETWORTH_FX_TIMEOUT_SECS", "5"))
    fx_fallback_rate = Decimal(os.getenv("NETWORTH_FX_FALLBACK_RATE", "1.4"))
    default_period = os.getenv("NETWORTH_DEFAULT_PERIOD", "this-month")
    return Settings(
        database_url=database_url,
        timezone=timezone,
        fx_provider=fx_provider,
        fx_timeout_secs=fx_timeout_secs,
        fx_fallback_rate=fx_fallback_rate,
        default_period=default_period,
    )


def local_now() -> datetime:
    """Wall-clock time in the configured zone, as a naive local datetime."""
    tz = ZoneInfo(get_settings().timezone)
    return datetime.now(tz).replace(tzinfo=None)


def local_today() -> date:
    return local_now().date()
