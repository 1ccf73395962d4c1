"""Typed role management policy rules.

Rule kinds form a closed set. Each kind is a pydantic model declaring the
fields that are authoritative for that kind; anything else a remote
service returns (audit metadata, inheritable settings, claim values of a
disabled authentication context) is dropped on parse and therefore never
compared.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from ..exceptions import ConfigurationError, UnsupportedRuleKindError


class RuleKind(str, Enum):
    """Supported rule types, keyed by the remote `ruleType` value."""

    APPROVAL = "RoleManagementPolicyApprovalRule"
    AUTHENTICATION_CONTEXT = "RoleManagementPolicyAuthenticationContextRule"
    ENABLEMENT = "RoleManagementPolicyEnablementRule"
    EXPIRATION = "RoleManagementPolicyExpirationRule"
    NOTIFICATION = "RoleManagementPolicyNotificationRule"


class _RuleModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


def _none_as_empty(value: list[Any] | None) -> list[Any]:
    return [] if value is None else value


class RuleTarget(_RuleModel):
    """Who and what a rule applies to."""

    caller: str | None = None
    operations: list[str] = []
    level: str | None = None

    @field_validator("operations", mode="before")
    @classmethod
    def _operations_default(cls, value: list[str] | None) -> list[str]:
        return _none_as_empty(value)


class Approver(_RuleModel):
    """A primary or escalation approver."""

    id: str | None = Field(default=None, validation_alias=AliasChoices("id", "userId", "groupId"))
    user_type: str | None = None
    is_backup: bool | None = None


class ApprovalStage(_RuleModel):
    approval_stage_time_out_in_days: int | None = None
    is_approver_justification_required: bool | None = None
    escalation_time_in_minutes: int | None = None
    is_escalation_enabled: bool | None = None
    primary_approvers: list[Approver] = []
    escalation_approvers: list[Approver] = []

    @field_validator("primary_approvers", "escalation_approvers", mode="before")
    @classmethod
    def _approvers_default(cls, value: list[Any] | None) -> list[Any]:
        return _none_as_empty(value)


class ApprovalSettings(_RuleModel):
    is_approval_required: bool | None = None
    is_approval_required_for_extension: bool | None = None
    is_requestor_justification_required: bool | None = None
    approval_mode: str | None = None
    approval_stages: list[ApprovalStage] = []

    @field_validator("approval_stages", mode="before")
    @classmethod
    def _stages_default(cls, value: list[Any] | None) -> list[Any]:
        return _none_as_empty(value)


class PolicyRule(_RuleModel):
    """Fields shared by every rule kind."""

    id: str
    rule_type: RuleKind
    target: RuleTarget | None = None

    def comparison_view(self) -> dict[str, Any]:
        """Order-insensitive view of the authoritative fields of the rule."""
        view = self.model_dump(mode="json", by_alias=True)
        if view.get("target") is not None:
            view["target"]["operations"] = sorted(view["target"]["operations"])
        return view


class ApprovalRule(PolicyRule):
    setting: ApprovalSettings = ApprovalSettings()

    def comparison_view(self) -> dict[str, Any]:
        view = super().comparison_view()
        for stage in view["setting"]["approvalStages"]:
            for key in ("primaryApprovers", "escalationApprovers"):
                stage[key] = sorted(stage[key], key=lambda approver: approver["id"] or "")
        return view


class AuthenticationContextRule(PolicyRule):
    is_enabled: bool = False
    claim_value: str | None = None

    def comparison_view(self) -> dict[str, Any]:
        view = super().comparison_view()
        # The claim value is only meaningful while the context is enforced.
        if not self.is_enabled:
            view.pop("claimValue", None)
        return view


class EnablementRule(PolicyRule):
    enabled_rules: list[str] = []

    @field_validator("enabled_rules", mode="before")
    @classmethod
    def _enabled_default(cls, value: list[str] | None) -> list[str]:
        return _none_as_empty(value)

    def comparison_view(self) -> dict[str, Any]:
        view = super().comparison_view()
        view["enabledRules"] = sorted(view["enabledRules"])
        return view


class ExpirationRule(PolicyRule):
    is_expiration_required: bool | None = None
    maximum_duration: str | None = None


class NotificationRule(PolicyRule):
    notification_type: str | None = None
    recipient_type: str | None = None
    notification_level: str | None = None
    is_default_recipients_enabled: bool | None = None
    notification_recipients: list[str] = []

    @field_validator("notification_recipients", mode="before")
    @classmethod
    def _recipients_default(cls, value: list[str] | None) -> list[str]:
        return _none_as_empty(value)

    def comparison_view(self) -> dict[str, Any]:
        view = super().comparison_view()
        view["notificationRecipients"] = sorted(view["notificationRecipients"])
        return view


RULE_MODELS: dict[RuleKind, type[PolicyRule]] = {
    RuleKind.APPROVAL: ApprovalRule,
    RuleKind.AUTHENTICATION_CONTEXT: AuthenticationContextRule,
    RuleKind.ENABLEMENT: EnablementRule,
    RuleKind.EXPIRATION: ExpirationRule,
    RuleKind.NOTIFICATION: NotificationRule,
}

assert set(RULE_MODELS) == set(RuleKind), "every rule kind needs a model"


def parse_rule(raw: dict[str, Any]) -> PolicyRule:
    """Parse a raw rule document into its kind's model.

    Args:
        raw: Rule as found in the template, a patched template or a
            remote effective policy.

    Returns:
        The typed rule.

    Raises:
        UnsupportedRuleKindError: If `ruleType` is missing or unknown.
        ConfigurationError: If the rule's fields do not fit its kind.
    """
    rule_type = raw.get("ruleType")
    try:
        kind = RuleKind(rule_type)
    except ValueError:
        raise UnsupportedRuleKindError(rule_type, raw.get("id")) from None

    try:
        return RULE_MODELS[kind].model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"rule '{raw.get('id')}' is not a valid {kind.value}: {e}") from e
