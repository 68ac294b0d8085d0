"""Register polling sessions."""
from __future__ import annotations

from .session import PollHandle, PollSession, SessionState

__all__ = ["PollHandle", "PollSession", "SessionState"]
