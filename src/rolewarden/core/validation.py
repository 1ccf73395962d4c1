"""Pre-flight validation of desired state.

Runs before any remote call; every failure is a ConfigurationError.
"""

from __future__ import annotations

from collections import Counter

from .domain_types import CorrelationKey, DesiredState
from .exceptions import DuplicateGrantError, RulesetNotFoundError


def find_duplicate_keys(state: DesiredState) -> list[CorrelationKey]:
    """Return correlation keys declared more than once, per grant kind."""
    counts = Counter((grant.kind, grant.principal_kind, grant.key) for grant in state.grants)
    return [key for (_, _, key), count in counts.items() if count > 1]


def validate_desired_state(state: DesiredState) -> None:
    """Validate desired state.

    Raises:
        DuplicateGrantError: If two grants of one kind share a key.
        RulesetNotFoundError: If a policy or grant names a missing ruleset.
    """
    duplicates = find_duplicate_keys(state)
    if duplicates:
        raise DuplicateGrantError(duplicates)

    known = {ruleset.name for ruleset in state.rulesets}
    for policy in state.policies:
        for reference in policy.all_references():
            if reference.ruleset_name not in known:
                raise RulesetNotFoundError(reference.ruleset_name)
    for grant in state.grants:
        if grant.ruleset_name is not None and grant.ruleset_name not in known:
            raise RulesetNotFoundError(grant.ruleset_name)
