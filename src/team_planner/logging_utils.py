"""Configure loguru and summarize planner state for logs."""

from __future__ import annotations

import json
import sys
from typing import Any

from loguru import logger


def configure_logging(level: str = "INFO") -> None:
    """Configure loguru logger with the specified level."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{module}</cyan>:<cyan>{line}</cyan>\n"
            "{message}"
        ),
    )


def summarize_board(board: Any) -> dict[str, Any]:
    """Render a compact, JSON-friendly summary of a packed team board.

    Args:
        board: A ``TeamBoard`` (or None).

    Returns:
        A dictionary suitable for logging or serialization.
    """
    if board is None:
        return {"board": None}

    lanes = list(getattr(board, "lanes", []) or [])
    d: dict[str, Any] = {
        "week_start": str(getattr(getattr(board, "week", None), "start", "")),
        "lanes_n": len(lanes),
        "tasks_n": sum(len(getattr(lane.result, "placements", [])) for lane in lanes),
    }
    busiest = max(lanes, key=lambda lane: lane.result.row_count, default=None)
    if busiest is not None and busiest.result.row_count:
        d["max_rows"] = busiest.result.row_count
        d["max_rows_lane"] = busiest.key
    hot = [lane.key for lane in lanes if getattr(lane, "workload", None) == "on_fire"]
    if hot:
        d["on_fire"] = hot[:5]
    return d


def pretty(obj: Any, *, indent: int = 2) -> str:
    """Serialize an object as JSON for readable logs.

    Args:
        obj: Object to serialize.
        indent: Indentation level for JSON output.

    Returns:
        A JSON string when possible; otherwise `str(obj)`.
    """
    try:
        return json.dumps(obj, indent=indent, default=str)
    except (TypeError, ValueError):
        return str(obj)
