"""Tests for kya.core.auth - role-based access control."""

from __future__ import annotations

import pytest

from kya.core.auth import AccessControl, Role
from kya.core.exceptions import Unauthorized


class TestAccessControl:
    """Test role grants, revocations and checks."""

    def test_grant_and_has_role(self):
        access = AccessControl()
        assert access.grant(Role.PROVER, "oracle") is True
        assert access.has_role(Role.PROVER, "oracle")
        assert not access.has_role(Role.ADMIN, "oracle")

    def test_grant_twice_reports_no_change(self):
        access = AccessControl({Role.ADMIN: ["admin"]})
        assert access.grant(Role.ADMIN, "admin") is False

    def test_revoke(self):
        access = AccessControl({"prover": ["oracle"]})
        assert access.revoke(Role.PROVER, "oracle") is True
        assert access.revoke(Role.PROVER, "oracle") is False
        assert not access.has_role(Role.PROVER, "oracle")

    def test_role_accepts_string_values(self):
        access = AccessControl()
        access.grant("adjudicator", "judge")
        assert access.has_role(Role.ADJUDICATOR, "judge")

    def test_members_is_a_snapshot(self):
        access = AccessControl({Role.PROVER: ["a", "b"]})
        members = access.members(Role.PROVER)
        access.grant(Role.PROVER, "c")
        assert members == frozenset({"a", "b"})

    def test_require_raises_unauthorized(self):
        access = AccessControl()
        with pytest.raises(Unauthorized) as exc_info:
            access.require(Role.ADMIN, "0xmallory")
        assert exc_info.value.required == "role:admin"

    def test_round_trip(self):
        access = AccessControl({Role.ADMIN: ["admin"], Role.PROVER: ["o1", "o2"]})
        restored = AccessControl.from_dict(access.to_dict())
        assert restored.members(Role.PROVER) == frozenset({"o1", "o2"})
        assert restored.members(Role.SLASHER) == frozenset()
