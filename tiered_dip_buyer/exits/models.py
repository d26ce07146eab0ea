"""
Data models for exit evaluation.
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict

from ..models import ExitReason, Position


class ExitDecision(BaseModel):
    """An exit condition that fired for a position."""

    model_config = ConfigDict(frozen=True)

    reason: ExitReason
    pnl_pct: float
    message: str


class ExitOutcome(BaseModel):
    """Result of acting on an exit decision."""

    model_config = ConfigDict(frozen=True)

    decision: ExitDecision
    closed_position: Optional[Position] = None

    @property
    def executed(self) -> bool:
        return self.closed_position is not None
