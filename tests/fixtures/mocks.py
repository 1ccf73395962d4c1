"""Mock objects for testing."""

from __future__ import annotations

import itertools
from collections.abc import Callable
from unittest.mock import AsyncMock

import pytest

from rolewarden.adapters.memory import InMemoryAuthorizationService
from rolewarden.core.domain_types import PrincipalKind
from rolewarden.core.interfaces import RemoteMutator, RemoteStateReader

from tests.fixtures.domain_objects import SUBSCRIPTION_SCOPE


def seeded_service() -> InMemoryAuthorizationService:
    """An in-memory service with an Owner caller and two principals."""
    service = InMemoryAuthorizationService()
    owner = service.add_role("Owner", "role-owner", actions=["*"])
    service.add_role("Contributor", "role-contributor", actions=["*"])
    service.add_role("Reader", "role-reader", actions=["*/read"])
    service.grant_caller(owner, SUBSCRIPTION_SCOPE)
    service.add_principal("Platform Team", PrincipalKind.GROUP, "group-1")
    service.add_principal("alice@example.com", PrincipalKind.USER, "user-1")
    return service


@pytest.fixture
def memory_service() -> InMemoryAuthorizationService:
    """Return a seeded in-memory authorization service."""
    return seeded_service()


@pytest.fixture
def mock_reader() -> AsyncMock:
    """Return a mock remote state reader with empty defaults."""
    reader = AsyncMock(spec=RemoteStateReader)
    reader.list_existing_grants.return_value = []
    reader.get_caller_assignments.return_value = []
    reader.get_role_actions.return_value = []
    return reader


@pytest.fixture
def mock_mutator() -> AsyncMock:
    """Return a mock remote mutator."""
    return AsyncMock(spec=RemoteMutator)


@pytest.fixture
def request_names() -> Callable[[], str]:
    """Return a deterministic request name factory."""
    counter = itertools.count(1)
    return lambda: f"request-new-{next(counter)}"
