"""
Utility functions for the ATTOM gateway

Provides logging setup and small helpers shared by the query layer
"""

import logging
from pathlib import Path
from typing import Any, Optional


# ═══════════════════════════════════════════════════════════════════
# LOGGING
# ═══════════════════════════════════════════════════════════════════

def setup_logging(log_level: str = "INFO", log_file: Optional[str | Path] = None) -> None:
    """Configure logging for the gateway"""
    level = getattr(logging, log_level.upper())

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers
    )


def get_logger(name: str) -> logging.Logger:
    """Get logger instance for module"""
    return logging.getLogger(name)


# ═══════════════════════════════════════════════════════════════════
# PARAMETER HELPERS
# ═══════════════════════════════════════════════════════════════════

def drop_none(params: dict[str, Any] | None) -> dict[str, Any]:
    """Return a copy of ``params`` without ``None`` values"""
    if not params:
        return {}
    return {k: v for k, v in params.items() if v is not None}


def stringify_param(value: Any) -> str:
    """Render a query value the way the upstream API expects it"""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def dig(data: Any, *path: str | int) -> Any:
    """Walk nested dicts/lists, returning None on the first missing step"""
    current = data
    for step in path:
        if isinstance(step, int):
            if not isinstance(current, list) or len(current) <= step:
                return None
            current = current[step]
        else:
            if not isinstance(current, dict):
                return None
            current = current.get(step)
        if current is None:
            return None
    return current
