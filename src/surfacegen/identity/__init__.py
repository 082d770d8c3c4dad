"""Verified identity holder."""

from .identity_gate import IdentityGate

__all__ = ["IdentityGate"]
