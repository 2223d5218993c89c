"""Provide the public `team_planner` package exports."""

from __future__ import annotations

from .timeline.packer import PackResult, pack
from .timeline.window import DateWindowManager, LoadRange

__all__ = ["DateWindowManager", "LoadRange", "PackResult", "pack"]
