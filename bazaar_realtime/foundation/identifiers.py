"""Identifier generation for realtime sessions."""

from __future__ import annotations

from uuid import uuid4


def new_sid() -> str:
    """Generate a new session id for an accepted socket."""
    return uuid4().hex
