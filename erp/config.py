from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

import streamlit as st

CONFIG_FILE_NAME = "settings.json"
ENV_DATA_DIR = "ERP_DATA_DIR"
ENV_BATCH_SIZE = "ERP_IMPORT_BATCH_SIZE"
DEFAULT_BATCH_SIZE = 100


@dataclass(frozen=True)
class Settings:
    data_dir: Path
    db_path: Path
    currency: str = "KRW"
    sales_batch_size: int = DEFAULT_BATCH_SIZE


def _default_data_dir() -> Path:
    return Path.home() / ".smallbiz_erp"


def _load_persisted_settings(data_dir: Path) -> dict:
    cfg = data_dir / CONFIG_FILE_NAME
    if cfg.exists():
        try:
            return json.loads(cfg.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return {}
    return {}


def _batch_size_from_env() -> int:
    raw = os.getenv(ENV_BATCH_SIZE, "").strip()
    if not raw:
        return DEFAULT_BATCH_SIZE
    try:
        n = int(raw)
    except ValueError:
        raise ValueError(f"{ENV_BATCH_SIZE} must be an integer, got {raw!r}.")
    if n <= 0:
        raise ValueError(f"{ENV_BATCH_SIZE} must be > 0.")
    return n


def persist_data_dir(data_dir_str: str) -> None:
    data_dir = Path(data_dir_str).expanduser().resolve()
    data_dir.mkdir(parents=True, exist_ok=True)

    payload = {"data_dir": str(data_dir)}
    # Written to the default folder as well so the next start finds it.
    for folder in {data_dir, _default_data_dir()}:
        folder.mkdir(parents=True, exist_ok=True)
        (folder / CONFIG_FILE_NAME).write_text(json.dumps(payload, indent=2), encoding="utf-8")

    st.session_state["erp_data_dir"] = str(data_dir)


def load_settings(data_dir: str | Path | None = None) -> Settings:
    # Priority order:
    # 1) Explicit argument (CLI --db folder, tests)
    # 2) Environment variable
    # 3) Persisted settings in default folder
    # 4) Default folder
    if data_dir is not None:
        resolved = Path(data_dir).expanduser().resolve()
    elif os.getenv(ENV_DATA_DIR):
        resolved = Path(os.getenv(ENV_DATA_DIR, "")).expanduser().resolve()
    else:
        default_dir = _default_data_dir()
        persisted = _load_persisted_settings(default_dir)
        resolved = Path(persisted.get("data_dir", default_dir)).expanduser().resolve()

    resolved.mkdir(parents=True, exist_ok=True)
    return Settings(
        data_dir=resolved,
        db_path=resolved / "erp.db",
        sales_batch_size=_batch_size_from_env(),
    )


@st.cache_resource
def get_settings() -> Settings:
    # Session state (set via Data Management page) wins over everything else.
    if "erp_data_dir" in st.session_state:
        return load_settings(st.session_state["erp_data_dir"])
    return load_settings()
