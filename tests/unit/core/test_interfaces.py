"""Unit tests for interfaces."""

from __future__ import annotations

from typing import Protocol

from rolewarden.adapters.memory import InMemoryAuthorizationService
from rolewarden.core.interfaces import RemoteMutator, RemoteStateReader


class TestRemoteStateReaderInterface:
    """Tests for RemoteStateReader interface."""

    def test_is_protocol(self) -> None:
        """Test that RemoteStateReader is a Protocol."""
        assert issubclass(RemoteStateReader, Protocol)

    def test_has_required_methods(self) -> None:
        """Test that interface has required methods."""
        for name in (
            "list_existing_grants",
            "resolve_principal_name",
            "resolve_principal_id",
            "resolve_role_name",
            "resolve_role_definition_id",
            "get_effective_policy",
            "get_caller_assignments",
            "get_role_actions",
        ):
            assert hasattr(RemoteStateReader, name)


class TestRemoteMutatorInterface:
    """Tests for RemoteMutator interface."""

    def test_is_protocol(self) -> None:
        """Test that RemoteMutator is a Protocol."""
        assert issubclass(RemoteMutator, Protocol)

    def test_has_required_methods(self) -> None:
        """Test that interface has required methods."""
        assert hasattr(RemoteMutator, "submit_request")
        assert hasattr(RemoteMutator, "cancel_request")
        assert hasattr(RemoteMutator, "update_policy")


class TestInMemoryConformance:
    """The in-memory service satisfies both protocols."""

    def test_isinstance(self) -> None:
        """Runtime checkable protocols accept the in-memory service."""
        service = InMemoryAuthorizationService()

        assert isinstance(service, RemoteStateReader)
        assert isinstance(service, RemoteMutator)
