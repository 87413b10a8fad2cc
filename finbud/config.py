# finbud/config.py
from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Dict

import yaml
from dotenv import load_dotenv

DEFAULT_CONFIG: Dict[str, object] = {
    "store": "sqlite",
    "db_path": "finbud.db",
    "local_path": "finbud_transactions.json",
    "api": {
        "prefix": "/api",
        "url": "http://127.0.0.1:8000/api",
        "timeout": 10,
        "host": "127.0.0.1",
        "port": 8000,
        "cors_origins": ["http://localhost:3000"],
    },
    "classifier": {
        "provider": "gemini",
        "model": None,
        "timeout": 10,
        "strict_total": False,
    },
}

CONFIG_PATH = Path("finbud.yaml")

# (environment variable, config path, converter)
_ENV_OVERRIDES = [
    ("FINBUD_DB_PATH", ("db_path",), str),
    ("FINBUD_LOCAL_PATH", ("local_path",), str),
    ("FINBUD_API_URL", ("api", "url"), str),
    ("FINBUD_TIMEOUT", ("api", "timeout"), float),
    ("FINBUD_CLASSIFIER_PROVIDER", ("classifier", "provider"), str),
    ("FINBUD_CLASSIFIER_MODEL", ("classifier", "model"), str),
]


def _merge_defaults(current: Dict[str, object], defaults: Dict[str, object]) -> Dict[str, object]:
    """Merge missing default keys into the current config recursively."""
    merged = dict(current)
    for key, value in defaults.items():
        if key not in merged:
            merged[key] = copy.deepcopy(value)
        elif isinstance(value, dict) and isinstance(merged[key], dict):
            merged[key] = _merge_defaults(merged[key], value)
    return merged


def _apply_env(config: Dict[str, object]) -> Dict[str, object]:
    for env_name, path, convert in _ENV_OVERRIDES:
        raw = os.environ.get(env_name)
        if not raw:
            continue
        target = config
        for part in path[:-1]:
            target = target.setdefault(part, {})  # type: ignore[assignment]
        target[path[-1]] = convert(raw)
    return config


def load_config(path: Path | str | None = None, env_file: str | None = None) -> Dict[str, object]:
    """Load YAML settings merged over the defaults, then apply env overrides."""
    if env_file:
        load_dotenv(env_file)

    target = Path(path) if path else CONFIG_PATH
    data: Dict[str, object] = {}
    if target.exists():
        with target.open("r", encoding="utf-8") as fp:
            data = yaml.safe_load(fp) or {}
    return _apply_env(_merge_defaults(data, DEFAULT_CONFIG))


def save_config(config: Dict[str, object], path: Path | str | None = None) -> None:
    target = Path(path) if path else CONFIG_PATH
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8") as fp:
        yaml.safe_dump(config, fp, sort_keys=False)


def configure_logging() -> None:
    logging.basicConfig(
        level=os.getenv("FINBUD_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
