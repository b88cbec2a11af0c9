from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

import requests

from flowi.domain.errors import FxUnavailableError, InvalidRateError, ValidationError
from flowi.domain.models import ExchangeRate
from flowi.domain.money import validate_rate
from flowi.repositories.contracts import ExchangeRateRepository

log = logging.getLogger("flowi.fx")

BCV_URL = "https://bcv-api.rafnixg.dev/rates/"
PARALELO_URL = "https://ve.dolarapi.com/v1/dolares/paralelo"
FALLBACK_URL = "https://api.exchangerate-api.com/v4/latest/USD"

SOURCE_LABELS = {"bcv": "BCV", "paralelo": "Paralelo", "manual": "Manual"}


class FxService:
    def __init__(
        self,
        repo: ExchangeRateRepository,
        source: str = "bcv",
        max_age_hours: float = 12.0,
        timeout: float = 10.0,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.repo = repo
        self.source = source
        self.max_age = timedelta(hours=float(max_age_hours))
        self.timeout = timeout
        self.clock = clock

    def _fetch_json(self, url: str):
        r = requests.get(url, timeout=self.timeout, headers={"Accept": "application/json"})
        r.raise_for_status()
        return r.json()

    def _validate_rate(self, value: object) -> float:
        try:
            return validate_rate(value)
        except InvalidRateError as e:
            raise FxUnavailableError(str(e)) from e

    def _extract_bcv(self, data) -> float:
        # seen shapes: {"dollar": 36.5, "date": ...}, {"USD": {"rate": ...}}, {"rates": {"USD": ...}}, [{"currency": "USD", "rate": ...}]
        if isinstance(data, dict):
            if "dollar" in data:
                return self._validate_rate(data["dollar"])
            for key in ("USD", "usd"):
                v = data.get(key)
                if isinstance(v, dict) and "rate" in v:
                    return self._validate_rate(v["rate"])
                if v is not None and not isinstance(v, dict):
                    return self._validate_rate(v)
            rates = data.get("rates")
            if isinstance(rates, dict) and "USD" in rates:
                return self._validate_rate(rates["USD"])
        if isinstance(data, list):
            for entry in data:
                if isinstance(entry, dict) and (entry.get("currency") == "USD" or entry.get("code") == "USD"):
                    return self._validate_rate(entry.get("rate"))
        raise FxUnavailableError(f"BCV response missing USD rate. Raw: {data}")

    def _extract_paralelo(self, data) -> float:
        if isinstance(data, dict):
            for key in ("promedio", "price", "venta"):
                if data.get(key) is not None:
                    return self._validate_rate(data[key])
        raise FxUnavailableError(f"Paralelo response missing rate. Raw: {data}")

    def _extract_fallback(self, data) -> float:
        if isinstance(data, dict):
            rates = data.get("rates")
            if isinstance(rates, dict) and rates.get("VES") is not None:
                return self._validate_rate(rates["VES"])
        raise FxUnavailableError(f"FX API response missing VES rate. Raw: {data}")

    def fetch_rate(self, source: str) -> float:
        """Read USD->VES from the remote ``source``, falling back to the public endpoint."""
        source = source.lower()
        if source == "bcv":
            chain = ((BCV_URL, self._extract_bcv), (FALLBACK_URL, self._extract_fallback))
        elif source == "paralelo":
            chain = ((PARALELO_URL, self._extract_paralelo),)
        else:
            raise ValidationError(f"Unknown FX source: {source!r}")

        last_err = None
        for url, extract in chain:
            try:
                return extract(self._fetch_json(url))
            except (requests.RequestException, ValueError, FxUnavailableError) as e:
                last_err = e
                log.warning("fx_source_failed source=%s url=%s error=%s", source, url, e)

        raise FxUnavailableError(f"FX fetch failed for {source}. Last error: {last_err}")

    def update_rate(self, source: Optional[str] = None, manual_rate: Optional[float] = None) -> ExchangeRate:
        source = (source or self.source).lower()
        if source == "manual":
            if manual_rate is None:
                raise ValidationError("A manual exchange rate must be provided.")
            value = validate_rate(manual_rate)
        else:
            value = self.fetch_rate(source)

        created_at = self.clock().replace(microsecond=0).isoformat(sep=" ")
        rate = self.repo.add_exchange_rate(value, SOURCE_LABELS.get(source, source), created_at=created_at)
        log.info("fx_rate_updated source=%s usd_to_ves=%.4f", rate.source, rate.usd_to_ves)
        return rate

    def is_fresh(self, rate: ExchangeRate) -> bool:
        try:
            created = datetime.fromisoformat(rate.created_at)
        except ValueError:
            return False
        return self.clock() - created <= self.max_age

    def get_active_rate(self) -> ExchangeRate:
        active = self.repo.get_active_exchange_rate()
        if active is not None and (self.source == "manual" or self.is_fresh(active)):
            return active
        if self.source == "manual":
            raise FxUnavailableError("No exchange rate configured. Set a manual rate first.")

        try:
            return self.update_rate(self.source)
        except FxUnavailableError:
            if active is None:
                raise
            log.warning("fx_fallback_stored rate=%.4f created_at=%s", active.usd_to_ves, active.created_at)
            return active

    def get_today_rate(self) -> float:
        return self.get_active_rate().usd_to_ves
