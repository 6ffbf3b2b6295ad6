from __future__ import annotations

import logging
import sys
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

import yaml

CONFIG_DIR = Path(__file__).resolve().parent / "config"
_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


@lru_cache(maxsize=None)
def load_tool_config(tool_key: str) -> Dict[str, Any]:
    cfg = CONFIG_DIR / f"{tool_key}.yaml"
    if not cfg.exists():
        raise RuntimeError(f"configuration file not found for tool '{tool_key}': {cfg}")
    return yaml.safe_load(cfg.read_text()) or {}


def read_tool_params(tool_key: str) -> Dict[str, Any]:
    data = load_tool_config(tool_key)
    params = data.get("params") or {}
    if not isinstance(params, dict):
        raise RuntimeError(f"'params' for tool '{tool_key}' must be a mapping, got {type(params).__name__}")
    return dict(params)


def get_service_logger(name: str, level: int | str, fmt: str = _LOG_FORMAT) -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(fmt))
        logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    return logger
