"""
Policy evaluation engine for the case-management ledger.

A policy allows a caller when the caller's organization appears in
``allowed_orgs`` and the caller's role appears in ``allowed_roles``.
Entries match by exact string equality, and the literal ``"*"`` matches
anything. An empty list matches nothing. There are no deny entries and
no precedence between policies.

Roles are taken from the request as reported by the caller; nothing here
binds a role to the caller's identity.
"""

from dataclasses import dataclass, field
from typing import Iterable, Optional

from shared.logging import get_logger
from ..entities.models import Policy

WILDCARD = "*"


def matches(allowed: Iterable[str], value: str) -> bool:
    """True when ``value`` or the wildcard appears in ``allowed``."""
    for entry in allowed:
        if entry == value or entry == WILDCARD:
            return True
    return False


def org_allowed(policy: Policy, organization: str) -> bool:
    return matches(policy.allowed_orgs, organization)


def role_allowed(policy: Policy, role: str) -> bool:
    return matches(policy.allowed_roles, role)


def authorize(policy: Policy, organization: str, role: str) -> bool:
    """Org and role must both be admitted by ``policy``."""
    return org_allowed(policy, organization) and role_allowed(policy, role)


@dataclass
class AccessDecision:
    """Result of a policy evaluation."""
    allowed: bool
    policy_id: str
    organization: str
    role: Optional[str] = None
    reason: str = field(default="")


class PolicyEngine:
    """Evaluates stored policies for a caller.

    ``evaluate`` checks both axes and backs single-entity reads.
    ``evaluate_organization`` checks only the organization axis and backs
    list queries whose signature carries no role.
    """

    def __init__(self):
        self.logger = get_logger("cdms.policy_engine")

    def evaluate(self, policy: Policy, organization: str, role: str) -> AccessDecision:
        org_ok = org_allowed(policy, organization)
        role_ok = role_allowed(policy, role)

        if org_ok and role_ok:
            reason = f"policy {policy.policy_id} allows organization and role"
        elif not org_ok:
            reason = f"organization {organization} not allowed by policy {policy.policy_id}"
        else:
            reason = f"role {role} not allowed by policy {policy.policy_id}"

        decision = AccessDecision(
            allowed=org_ok and role_ok,
            policy_id=policy.policy_id,
            organization=organization,
            role=role,
            reason=reason
        )
        self.logger.debug(
            "Policy evaluation result",
            policy_id=policy.policy_id,
            organization=organization,
            role=role,
            allowed=decision.allowed
        )
        return decision

    def evaluate_organization(self, policy: Policy, organization: str) -> AccessDecision:
        allowed = org_allowed(policy, organization)
        if allowed:
            reason = f"policy {policy.policy_id} allows organization"
        else:
            reason = f"organization {organization} not allowed by policy {policy.policy_id}"

        self.logger.debug(
            "Organization-only policy evaluation result",
            policy_id=policy.policy_id,
            organization=organization,
            allowed=allowed
        )
        return AccessDecision(
            allowed=allowed,
            policy_id=policy.policy_id,
            organization=organization,
            reason=reason
        )
