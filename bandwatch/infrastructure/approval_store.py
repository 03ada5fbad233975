"""
Approval Store

Architectural Intent:
- Registry of incidents waiting for a human to approve ticket submission
- Shared by the incident workflow (register) and the callback server (claim)
- Guarantees each token submits at most one ticket

Design Decisions:
- One threading.Lock covers lookup and the used-flag transition, because the
  callback server runs handler threads next to the asyncio loop
- No I/O happens while the lock is held
- Entries are never removed; the store lives as long as the process
- Tokens come from the secrets module and are URL-safe
"""

from __future__ import annotations
from dataclasses import replace
from typing import Any, Optional
import logging
import secrets
import threading

from bandwatch.domain.entities.pending_approval import PendingApproval
from bandwatch.domain.errors import DuplicateApprovalError, InvalidTokenError

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


class ApprovalStore:
    """Concurrency-safe registry of pending approvals keyed by token."""

    def __init__(self) -> None:
        self._entries: dict[str, PendingApproval] = {}
        self._lock = threading.Lock()

    def register(self, snapshot: Any) -> str:
        """Store a new pending approval and return its token.

        Only hand the token out after this returns.
        """
        with self._lock:
            token = secrets.token_urlsafe(TOKEN_BYTES)
            while token in self._entries:
                token = secrets.token_urlsafe(TOKEN_BYTES)
            self._entries[token] = PendingApproval(token=token, snapshot=snapshot)
            total = len(self._entries)
        logger.info("Pending approval registered (%d total)", total)
        return token

    def claim(self, token: str) -> Any:
        """Mark the token used and return its snapshot.

        Raises:
            InvalidTokenError: the token was never registered
            DuplicateApprovalError: the token was already used
        """
        with self._lock:
            entry = self._entries.get(token)
            if entry is None:
                raise InvalidTokenError("unknown approval token")
            if entry.used:
                raise DuplicateApprovalError("approval token already used")
            entry.used = True
            return entry.snapshot

    def consume(self, token: str) -> Optional[Any]:
        """Like claim, but unknown and used tokens both yield None."""
        try:
            return self.claim(token)
        except (InvalidTokenError, DuplicateApprovalError) as e:
            logger.info("Approval token rejected: %s", e)
            return None

    def get(self, token: str) -> Optional[PendingApproval]:
        """Copy of the entry for a token; changing it does not affect the store."""
        with self._lock:
            entry = self._entries.get(token)
            return replace(entry) if entry is not None else None

    @property
    def pending_count(self) -> int:
        with self._lock:
            return sum(1 for e in self._entries.values() if not e.used)

    @property
    def total_count(self) -> int:
        with self._lock:
            return len(self._entries)
