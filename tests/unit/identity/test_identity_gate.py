from __future__ import annotations

import pytest

from src.surfacegen.exceptions import IdentityMissingError
from src.surfacegen.identity.identity_gate import IdentityGate


def test_require_without_identity() -> None:
    with pytest.raises(IdentityMissingError):
        IdentityGate().require()


def test_verify_normalises_and_clear_resets() -> None:
    gate = IdentityGate()

    assert gate.verify("  Me@Example.COM ") == "me@example.com"
    assert gate.require() == "me@example.com"

    gate.clear()
    assert gate.current is None
    assert gate.is_verified is False


def test_blank_identity_is_rejected() -> None:
    with pytest.raises(ValueError):
        IdentityGate().verify("   ")
