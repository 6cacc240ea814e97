from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from functools import lru_cache
from urllib.error import URLError
from urllib.request import Request, urlopen

from config import get_settings, local_today

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FxQuote:
    provider: str
    base: str
    quote: str
    rate: Decimal  # quote per 1 base
    rate_date: date
    fetched_at: datetime


class FxRateService:
    def __init__(self) -> None:
        self.settings = get_settings()

    def usd_to_cad_quote(self, on_date: date | None = None) -> FxQuote:
        provider = (self.settings.fx_provider or "frankfurter").lower()
        if provider != "frankfurter":
            raise ValueError(f"Unsupported FX provider: {provider}")
        return _fetch_frankfurter_usd_cad_quote(
            on_date or local_today(), timeout=self.settings.fx_timeout_secs
        )

    def usd_to_cad(self, on_date: date | None = None) -> Decimal:
        """Latest USD->CAD rate, or the configured fallback when the provider fails
        or is not supported."""
        try:
            rate = self.usd_to_cad_quote(on_date).rate
        except (RuntimeError, ValueError) as exc:
            logger.warning(
                f"fx_fallback: provider={self.settings.fx_provider} error={exc}"
            )
            return self.settings.fx_fallback_rate
        return rate or self.settings.fx_fallback_rate


@lru_cache(maxsize=64)
def _fetch_frankfurter_usd_cad_quote(on_date: date, *, timeout: float) -> FxQuote:
    url = f"https://api.frankfurter.app/{on_date.isoformat()}?from=USD&to=CAD"
    req = Request(url, headers={"Accept": "application/json"})
    fetched_at = datetime.now(timezone.utc)
    try:
        with urlopen(req, timeout=timeout) as resp:
            payload = json.loads(resp.read().decode("utf-8"))
    except (URLError, TimeoutError, json.JSONDecodeError) as exc:
        raise RuntimeError(
            f"Failed to fetch FX rate from Frankfurter for {on_date}"
        ) from exc

    try:
        rate_value = payload["rates"]["CAD"]
        effective_date = date.fromisoformat(payload["date"])
    except (KeyError, TypeError, ValueError) as exc:
        raise RuntimeError("Unexpected FX provider response") from exc

    return FxQuote(
        provider="frankfurter",
        base="USD",
        quote="CAD",
        rate=Decimal(str(rate_value)),
        rate_date=effective_date,
        fetched_at=fetched_at,
    )
