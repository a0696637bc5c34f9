"""
Access-controlled reads over the entity repository.

Single-entity reads fail hard: a denied caller gets AccessDeniedError and
no data. List reads are best effort: an item whose policy cannot be loaded
is dropped and the scan continues.

The two entity kinds differ on purpose:

- A case without a policy is open to everyone, in lookups and listings.
- A record without a policy is never returned: a lookup fails and a
  listing skips it.
- Case listings check organization and role. Record listings check the
  organization only, because their call signatures carry no role.
"""

from typing import List, Optional

from shared.errors import AccessDeniedError, DependencyFailureError, InvalidInputError, NotFoundError
from shared.logging import get_logger
from .entities.models import Case, Organization, Policy, Record
from .entities.repository import EntityRepository
from .identity import CallerContext
from .policy.engine import AccessDecision, PolicyEngine


class AccessControlledQuery:
    """Composes repository reads with policy evaluation for one invocation."""

    def __init__(self, repository: EntityRepository, engine: PolicyEngine, metrics=None):
        self.repository = repository
        self.engine = engine
        self.metrics = metrics
        self.logger = get_logger("cdms.query")

    def load_policy(self, policy_id: str) -> Policy:
        try:
            return self.repository.get(Policy, policy_id)
        except NotFoundError as e:
            raise NotFoundError(
                f"failed to get policy {policy_id}: {e.message}",
                details={"policy_id": policy_id}
            )

    def _record_decision(self, entity: str, decision: AccessDecision) -> None:
        if self.metrics is not None:
            self.metrics.record_access_decision(entity, decision.allowed)

    def _deny(self, entity: str, entity_id: str, organization: str, role: str) -> AccessDeniedError:
        self.logger.warning(
            "Access denied by policy",
            entity=entity,
            entity_id=entity_id,
            organization=organization,
            role=role
        )
        return AccessDeniedError(
            f"access denied by policy for organization {organization} and role {role}",
            details={"organization": organization, "role": role}
        )

    # Single-entity reads

    def authorize_case(self, case: Case, caller: CallerContext, role: str) -> Case:
        if not case.policy_id:
            return case

        organization = caller.require_msp_id()
        policy = self.load_policy(case.policy_id)
        decision = self.engine.evaluate(policy, organization, role)
        self._record_decision("case", decision)
        if not decision.allowed:
            raise self._deny("case", case.id, organization, role)
        return case

    def authorize_record(self, record: Record, caller: CallerContext, role: str) -> Record:
        organization = caller.require_msp_id()
        if not record.policy_id:
            raise AccessDeniedError(
                f"record {record.id} has no associated policy",
                details={"record_id": record.id}
            )

        policy = self.load_policy(record.policy_id)
        decision = self.engine.evaluate(policy, organization, role)
        self._record_decision("record", decision)
        if not decision.allowed:
            raise self._deny("record", record.id, organization, role)
        return record

    def get_case(self, case_id: str, caller: CallerContext, role: str) -> Case:
        return self.authorize_case(self.repository.get(Case, case_id), caller, role)

    def get_record(self, record_id: str, caller: CallerContext, role: str) -> Record:
        return self.authorize_record(self.repository.get(Record, record_id), caller, role)

    # Range-scan listings

    def _policy_for_item(self, entity: str, entity_id: str, policy_id: str) -> Optional[Policy]:
        try:
            return self.load_policy(policy_id)
        except (NotFoundError, InvalidInputError, DependencyFailureError) as e:
            self.logger.warning(
                "Could not check policy for listed item; skipping",
                entity=entity,
                entity_id=entity_id,
                policy_id=policy_id,
                error=e.message
            )
            return None

    def list_cases(self, caller: CallerContext, role: str) -> List[Case]:
        organization = caller.require_msp_id()
        cases = []
        for case in self.repository.scan(Case):
            if not case.policy_id:
                cases.append(case)
                continue

            policy = self._policy_for_item("case", case.id, case.policy_id)
            if policy is None:
                continue

            decision = self.engine.evaluate(policy, organization, role)
            self._record_decision("case", decision)
            if decision.allowed:
                cases.append(case)
        return cases

    def list_records(self, caller: CallerContext, case_id: Optional[str] = None) -> List[Record]:
        """Records visible to the caller's organization, optionally for one case."""
        organization = caller.require_msp_id()
        records = []
        for record in self.repository.scan(Record):
            if case_id is not None and record.case_id != case_id:
                continue
            if not record.policy_id:
                continue

            policy = self._policy_for_item("record", record.id, record.policy_id)
            if policy is None:
                continue

            decision = self.engine.evaluate_organization(policy, organization)
            self._record_decision("record", decision)
            if decision.allowed:
                records.append(record)
        return records

    def list_policies(self) -> List[Policy]:
        return list(self.repository.scan(Policy))

    def list_organizations(self) -> List[Organization]:
        return list(self.repository.scan(Organization))
