"""Utility helpers."""

from __future__ import annotations

import uuid


def new_sketch_id() -> str:
    """Return a fresh identifier for one sketch execution."""

    return str(uuid.uuid4())
