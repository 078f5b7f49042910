"""Access to the signed-in identity.

Authentication itself happens elsewhere (a hosted auth service); the
conversation store only asks "who is signed in right now?" before each
operation and does nothing when the answer is nobody.
"""

from __future__ import annotations

from typing import Optional, Protocol

from .logging_utils import get_logger


logger = get_logger(__name__)


class IdentityProvider(Protocol):
    def current_identity(self) -> Optional[str]:
        ...


class StaticIdentityProvider:
    """In-process identity holder used by the CLI and the tests."""

    def __init__(self, identity: Optional[str] = None) -> None:
        self._identity: Optional[str] = None
        if identity is not None:
            self.sign_in(identity)

    def sign_in(self, identity: str) -> None:
        cleaned = (identity or "").strip()
        self._identity = cleaned or None
        logger.debug("Identity set (signed_in=%s)", self._identity is not None)

    def sign_out(self) -> None:
        self._identity = None

    def current_identity(self) -> Optional[str]:
        return self._identity


__all__ = ["IdentityProvider", "StaticIdentityProvider"]
