"""
Tests for devseed.core.services.privilege — the sudo keepalive.
"""

from __future__ import annotations

import time

import pytest

from devseed.adapters.mock import FakePrivilege
from devseed.core.errors import PreconditionMissing
from devseed.core.services.privilege import PrivilegeKeepalive


def _wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


class TestPrivilegeKeepalive:
    def test_refreshes_until_cancelled(self):
        helper = FakePrivilege()
        keepalive = PrivilegeKeepalive(helper, refresh_seconds=0.02)
        assert keepalive.start()
        assert keepalive.running
        assert _wait_for(lambda: keepalive.refreshes >= 2)
        keepalive.cancel()
        assert not keepalive.running
        count = keepalive.refreshes
        time.sleep(0.1)
        assert keepalive.refreshes == count
        assert helper.call_names()[0] == "validate"

    def test_root_needs_nothing(self):
        helper = FakePrivilege(root=True)
        assert not PrivilegeKeepalive(helper).start()
        assert helper.calls == []

    def test_no_sudo(self):
        helper = FakePrivilege(available=False)
        assert not PrivilegeKeepalive(helper).start()
        assert helper.calls == []

    def test_validation_failure(self):
        helper = FakePrivilege()
        helper.fail.add("validate")
        keepalive = PrivilegeKeepalive(helper)
        with pytest.raises(PreconditionMissing, match="Sorry, try again"):
            keepalive.start()
        assert not keepalive.running

    def test_stops_at_time_limit(self):
        keepalive = PrivilegeKeepalive(FakePrivilege(), refresh_seconds=0.01, max_minutes=0.05 / 60)
        keepalive.start()
        assert _wait_for(lambda: not keepalive.running)
        keepalive.cancel()

    def test_cancel_without_start(self):
        keepalive = PrivilegeKeepalive(FakePrivilege())
        keepalive.cancel()
        keepalive.cancel()
        assert not keepalive.running
