from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping
import os
import sys

from flowi.domain.errors import ValidationError

FX_SOURCES = ("bcv", "paralelo", "manual")


@dataclass(frozen=True)
class AppPaths:
    base_dir: Path
    db_path: Path
    logs_dir: Path
    reports_dir: Path


@dataclass(frozen=True)
class Settings:
    fx_source: str = "bcv"
    fx_max_age_hours: float = 12.0
    default_payment_terms: int = 30
    http_timeout: float = 10.0


def _windows_appdata() -> Path:
    return Path(os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming")))


def _mac_app_support() -> Path:
    return Path.home() / "Library" / "Application Support"


def get_app_paths(app_name: str = "FlowiAdmin") -> AppPaths:
    override = os.environ.get("FLOWI_HOME", "").strip()
    if override:
        base = Path(override)
    elif sys.platform.startswith("win"):
        base = _windows_appdata() / app_name
    elif sys.platform == "darwin":
        base = _mac_app_support() / app_name
    else:
        base = Path.home() / f".{app_name.lower()}"

    logs = base / "logs"
    reports = base / "reports"
    db = base / "flowi.db"

    base.mkdir(parents=True, exist_ok=True)
    logs.mkdir(parents=True, exist_ok=True)
    reports.mkdir(parents=True, exist_ok=True)

    return AppPaths(base_dir=base, db_path=db, logs_dir=logs, reports_dir=reports)


def _number(environ: Mapping[str, str], key: str, default: float, cast=float):
    raw = environ.get(key, "").strip()
    if not raw:
        return default
    try:
        value = cast(raw)
    except ValueError as e:
        raise ValidationError(f"{key} must be a number. Received: {raw!r}") from e
    if value < 0:
        raise ValidationError(f"{key} must be >= 0. Received: {raw!r}")
    return value


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    env = os.environ if environ is None else environ

    source = env.get("FLOWI_FX_SOURCE", "").strip().lower() or Settings.fx_source
    if source not in FX_SOURCES:
        raise ValidationError(f"FLOWI_FX_SOURCE must be one of {', '.join(FX_SOURCES)}. Received: {source!r}")

    return Settings(
        fx_source=source,
        fx_max_age_hours=_number(env, "FLOWI_FX_MAX_AGE_HOURS", Settings.fx_max_age_hours),
        default_payment_terms=_number(env, "FLOWI_PAYMENT_TERMS", Settings.default_payment_terms, cast=int),
        http_timeout=_number(env, "FLOWI_HTTP_TIMEOUT", Settings.http_timeout),
    )
