"""Tests for the optional Firestore reachability check."""
from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from provisioner.core.errors import CommandFailed
from provisioner.verify import verify_firestore


def test_lists_root_collections_sorted():
    client = MagicMock()
    client.collections.return_value = [SimpleNamespace(id="users"), SimpleNamespace(id="items")]
    assert verify_firestore("acme-1", client=client) == ["items", "users"]


def test_empty_database_is_fine():
    client = MagicMock()
    client.collections.return_value = []
    assert verify_firestore("acme-1", client=client) == []


def test_unreachable_database_is_fatal():
    client = MagicMock()
    client.collections.side_effect = RuntimeError("404 The database (default) does not exist")
    with pytest.raises(CommandFailed) as exc:
        verify_firestore("acme-1", client=client)
    assert exc.value.label == "Verify Firestore"
    assert "does not exist" in exc.value.output
