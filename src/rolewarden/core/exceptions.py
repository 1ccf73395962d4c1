"""Domain-specific exceptions.

All exceptions in the rolewarden system inherit from RolewardenError,
making it easy to catch all system errors while still being able
to handle specific error types.

Every error aborts the run. Re-running is the recovery path: the plan
is recomputed from fresh remote state, so a resumed run only applies
the remaining delta.
"""

from __future__ import annotations

from typing import Any


class RolewardenError(Exception):
    """Base exception for all rolewarden errors."""

    pass


class ConfigurationError(RolewardenError):
    """Desired state is invalid.

    Raised before any remote call is made.
    """

    pass


class ConfigurationEmptyError(ConfigurationError):
    """Configuration declares no principals at all.

    Loaders log it as a warning unless strict loading is requested.
    """

    pass


class DuplicateGrantError(ConfigurationError):
    """Two desired grants share a (target, role, principal) key."""

    def __init__(self, keys: list[Any]) -> None:
        """Initialize DuplicateGrantError.

        Args:
            keys: The correlation keys declared more than once.
        """
        rendered = ", ".join(f"{k.target}:{k.role_name}:{k.principal_name}" for k in keys)
        super().__init__(f"duplicate grants declared: {rendered}")
        self.keys = keys


class RulesetNotFoundError(ConfigurationError):
    """A policy or grant references a ruleset that does not exist."""

    def __init__(self, ruleset_name: str) -> None:
        """Initialize RulesetNotFoundError."""
        super().__init__(f"ruleset '{ruleset_name}' not found")
        self.ruleset_name = ruleset_name


class UnknownRuleError(ConfigurationError):
    """A ruleset patches a rule id absent from the policy template."""

    def __init__(self, rule_id: str) -> None:
        """Initialize UnknownRuleError."""
        super().__init__(f"rule with id '{rule_id}' not found")
        self.rule_id = rule_id


class UnsupportedRuleKindError(ConfigurationError):
    """A rule carries a rule type outside the supported set."""

    def __init__(self, rule_type: str | None, rule_id: str | None = None) -> None:
        """Initialize UnsupportedRuleKindError."""
        super().__init__(f"unknown rule type '{rule_type}' (rule '{rule_id}')")
        self.rule_type = rule_type
        self.rule_id = rule_id


class InvalidTargetError(ConfigurationError):
    """A target is neither a recognised scope nor a managed group name."""

    def __init__(self, target: str) -> None:
        """Initialize InvalidTargetError."""
        super().__init__(f"target '{target}' is not valid")
        self.target = target


class ResolutionError(RolewardenError):
    """A remote identifier or name no longer resolves.

    A dangling reference aborts the run.
    """

    pass


class PrincipalNotFoundError(ResolutionError):
    """A principal id or name could not be resolved."""

    def __init__(self, reference: str, principal_kind: str) -> None:
        """Initialize PrincipalNotFoundError."""
        super().__init__(f"{principal_kind.lower()} '{reference}' not found")
        self.reference = reference
        self.principal_kind = principal_kind


class RoleNotFoundError(ResolutionError):
    """A role definition id or name could not be resolved."""

    def __init__(self, reference: str) -> None:
        """Initialize RoleNotFoundError."""
        super().__init__(f"role definition '{reference}' not found")
        self.reference = reference


class PolicyNotFoundError(ResolutionError):
    """No (or more than one) role management policy applies to a target and role."""

    pass


class PermissionDeniedError(RolewardenError):
    """The calling principal lacks the actions required for this run."""

    def __init__(self, target: str, required_actions: tuple[str, ...]) -> None:
        """Initialize PermissionDeniedError."""
        super().__init__(
            f"caller holds none of the required actions at '{target}': "
            f"{', '.join(required_actions)}"
        )
        self.target = target
        self.required_actions = required_actions


class UnknownGrantStatusError(RolewardenError):
    """An existing grant reports a status outside the known status domain."""

    def __init__(self, status: str, grant_id: str) -> None:
        """Initialize UnknownGrantStatusError."""
        super().__init__(f"grant '{grant_id}' has unrecognised status '{status}'")
        self.status = status
        self.grant_id = grant_id


class InvalidPlanError(RolewardenError):
    """A plan entry lacks what its action needs to be applied."""

    pass


class RemoteCallError(RolewardenError):
    """A remote service call failed.

    Not retried by the core; the adapter layer may already have retried
    throttling and timeouts before raising this.

    Attributes:
        status_code: HTTP status code, if a response was received.
        error_code: Service error code from the response body, if any.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_code: str | None = None,
    ) -> None:
        """Initialize RemoteCallError.

        Args:
            message: Error description.
            status_code: HTTP status code.
            error_code: Service-specific error code.
        """
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
