"""
Secret Policy Value Object

Gate for the remote callback actions (/approve and /check). Either the action
is open to anyone holding the link, or the caller must present the shared
secret configured for the deployment.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional
import hmac


class SecretPolicy:
    """Base of the two policy variants: Open and RequireSecret."""

    @staticmethod
    def from_secret(secret: Optional[str]) -> SecretPolicy:
        """An empty or missing secret means the actions are open."""
        if secret:
            return RequireSecret(secret)
        return Open()

    def authorize(self, presented: Optional[str]) -> bool:
        raise NotImplementedError

    @property
    def secret(self) -> Optional[str]:
        return None


@dataclass(frozen=True)
class Open(SecretPolicy):
    def authorize(self, presented: Optional[str]) -> bool:
        return True


@dataclass(frozen=True)
class RequireSecret(SecretPolicy):
    value: str = field(repr=False)

    def __post_init__(self):
        if not self.value:
            raise ValueError("RequireSecret needs a non-empty secret")

    def authorize(self, presented: Optional[str]) -> bool:
        if presented is None:
            return False
        return hmac.compare_digest(presented.encode("utf-8"), self.value.encode("utf-8"))

    @property
    def secret(self) -> Optional[str]:
        return self.value
