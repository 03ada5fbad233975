"""
Pending Approval Entity

Architectural Intent:
- One incident waiting for a human to approve ticket submission
- Carries its own configuration snapshot so the ticket filed later matches the
  incident that was reported, whatever happens to the live config meanwhile

State machine per token:
    PENDING --(first successful claim)--> USED
There is no "invalid" state: unknown tokens are simply absent from the store.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import Enum, auto
from typing import Any


class ApprovalState(Enum):
    PENDING = auto()
    USED = auto()


@dataclass
class PendingApproval:
    """Mutable record owned by the ApprovalStore; `used` flips exactly once."""
    token: str
    snapshot: Any
    used: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def state(self) -> ApprovalState:
        return ApprovalState.USED if self.used else ApprovalState.PENDING
