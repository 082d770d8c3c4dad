"""Holder for the verified identity required by bulk regeneration."""

from __future__ import annotations

import logging

from ..exceptions import IdentityMissingError

logger = logging.getLogger(__name__)


class IdentityGate:
    """Single verified identity (an email) supplied by an upstream verifier.

    The engine never performs verification itself; it only consumes the
    resulting fact.
    """

    def __init__(self, identity: str | None = None) -> None:
        self._identity: str | None = None
        if identity:
            self.verify(identity)

    @property
    def current(self) -> str | None:
        return self._identity

    @property
    def is_verified(self) -> bool:
        return self._identity is not None

    def verify(self, identity: str) -> str:
        value = identity.strip().lower()
        if not value:
            raise ValueError("identity must not be empty")
        self._identity = value
        logger.info("identity.verified")
        return value

    def clear(self) -> None:
        self._identity = None
        logger.info("identity.cleared")

    def require(self) -> str:
        if self._identity is None:
            raise IdentityMissingError("Please verify your email first before regenerating images.")
        return self._identity


__all__ = ["IdentityGate"]
