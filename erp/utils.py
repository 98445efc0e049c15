from __future__ import annotations

from datetime import date


def iso_today() -> str:
    return date.today().isoformat()


def clean_text(value) -> str | None:
    if value is None:
        return None
    s = str(value).strip()
    return s if s else None
