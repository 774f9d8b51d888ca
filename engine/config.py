"""Lightweight loader for the shared tunables in configs/defaults.json."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

log = logging.getLogger(__name__)

DEFAULT_PATH = Path(__file__).resolve().parent.parent / "configs" / "defaults.json"
_CONFIG_DATA: Dict[str, Any] = {}


def load(path: Optional[str] = None) -> Dict[str, Any]:
    """Read a config file and make it the active one. A missing file yields {}."""
    global _CONFIG_DATA
    target = Path(path) if path else DEFAULT_PATH
    try:
        with target.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except FileNotFoundError:
        log.warning("config %s not found; using built-in defaults", target)
        data = {}
    except json.JSONDecodeError as e:
        log.error("config %s is not valid JSON (%s); using built-in defaults", target, e)
        data = {}
    _CONFIG_DATA = data if isinstance(data, dict) else {}
    return _CONFIG_DATA


def _ensure_loaded() -> None:
    if not _CONFIG_DATA:
        load()


def get(path: str, default: Any = None) -> Any:
    """Return a config value using dotted paths, or default when missing."""
    _ensure_loaded()
    if not path:
        return _CONFIG_DATA

    current: Any = _CONFIG_DATA
    for segment in path.split('.'):
        if isinstance(current, dict) and segment in current:
            current = current[segment]
        else:
            return default
    return current


def section(name: str) -> Dict[str, Any]:
    value = get(name, {})
    return dict(value) if isinstance(value, dict) else {}
