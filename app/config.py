"""Environment-driven settings for the form engine."""

from __future__ import annotations

import os
from pathlib import Path

from form_controller import FormSettings


ROOT = Path(__file__).resolve().parents[1]


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value >= 0 else default


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def load_settings(env_file: Path | None = None) -> FormSettings:
    _load_env_file(env_file or ROOT / "app" / ".env")
    return FormSettings(
        validation_debounce_ms=_env_int("DEALFORM_VALIDATION_DEBOUNCE_MS", 500),
        autosave_enabled=_env_flag("DEALFORM_AUTOSAVE", True),
        autosave_interval_ms=_env_int("DEALFORM_AUTOSAVE_INTERVAL_MS", 30_000),
        visible_cache_ttl_ms=_env_int("DEALFORM_VISIBLE_CACHE_TTL_MS", 100),
        history_size=max(1, _env_int("DEALFORM_HISTORY_SIZE", 50)),
        default_currency=(os.getenv("DEALFORM_DEFAULT_CURRENCY", "KRW").strip() or "KRW").upper(),
        storage_dir=os.getenv("DEALFORM_STORAGE_DIR", "storage").strip() or "storage",
    )
