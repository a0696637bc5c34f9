"""
Case-management ledger operations.

Every public method is one invocation: it runs inside a single ledger
transaction and either applies all of its writes or none. Arguments are
strings; list-valued arguments arrive JSON-encoded and are decoded here.
Callers that need an organization pass a CallerContext explicitly.
"""

import time
from contextlib import contextmanager
from typing import Iterator, List, Optional

from shared.errors import AccessDeniedError, CdmsException
from shared.logging import get_logger
from .entities.models import (
    AUTO_GENERATED, CASE_STATUS_OPEN,
    Case, Organization, Policy, Record, RecordMetadataUpdate, User,
    decode_string_list,
)
from .entities.repository import EntityRepository
from .identity import CallerContext
from .ledger.store import LedgerStore
from .policy.engine import PolicyEngine
from .query import AccessControlledQuery


class CaseManagementContract:
    """Policy-guarded CRUD for policies, organizations, users, cases and records."""

    def __init__(self, store: LedgerStore, engine: Optional[PolicyEngine] = None, metrics=None):
        self.store = store
        self.engine = engine or PolicyEngine()
        self.metrics = metrics
        self.logger = get_logger("cdms.contract")

    @contextmanager
    def _invocation(self, operation: str) -> Iterator[EntityRepository]:
        start_time = time.time()
        outcome = "ok"
        try:
            with self.store.transaction() as txn:
                yield EntityRepository(txn)
        except CdmsException as e:
            outcome = e.code.lower()
            self.logger.info(
                "Invocation failed",
                operation=operation,
                code=e.code,
                message=e.message
            )
            raise
        except Exception as e:
            outcome = "internal_error"
            self.logger.error("Invocation crashed", operation=operation, error=str(e), exc_info=True)
            raise
        finally:
            if self.metrics is not None:
                self.metrics.record_invocation(operation, outcome, time.time() - start_time)

    def _query(self, repository: EntityRepository) -> AccessControlledQuery:
        return AccessControlledQuery(repository, self.engine, self.metrics)

    def _warn_ignored_filter(self, operation: str, expression: str) -> None:
        if expression:
            self.logger.warning(
                "Filter expression ignored; range scans cannot filter. Returning all accessible entities.",
                operation=operation,
                filter=expression
            )

    # Policies

    def create_policy(self, caller: CallerContext, policy_id: str, categories: str,
                      allowed_orgs: str, allowed_roles: str) -> None:
        with self._invocation("CreatePolicy") as repo:
            policy = Policy(
                policy_id=policy_id,
                categories=decode_string_list(categories, "categories"),
                allowed_orgs=decode_string_list(allowed_orgs, "allowedOrgs"),
                allowed_roles=decode_string_list(allowed_roles, "allowedRoles"),
                created_by=caller.msp_id or "",
                created_at=AUTO_GENERATED
            )
            repo.create(policy)

    def query_policy(self, policy_id: str) -> Policy:
        with self._invocation("QueryPolicy") as repo:
            return repo.get(Policy, policy_id)

    def query_all_policies(self) -> List[Policy]:
        with self._invocation("QueryAllPolicies") as repo:
            return self._query(repo).list_policies()

    # Organizations

    def query_all_organizations(self) -> List[Organization]:
        with self._invocation("QueryAllOrganizations") as repo:
            return self._query(repo).list_organizations()

    def query_organization(self, org_id: str) -> Organization:
        with self._invocation("QueryOrganization") as repo:
            return repo.get(Organization, org_id)

    def query_organization_members(self, org_id: str) -> List[str]:
        with self._invocation("QueryOrganizationMembers") as repo:
            return list(repo.get(Organization, org_id).members)

    # Users

    def create_user(self, username: str, full_name: str, email: str, role: str,
                    organization: str, password_hash: str) -> None:
        """Store a user. ``password_hash`` is produced by the caller and stored as given."""
        with self._invocation("CreateUser") as repo:
            repo.create(User(
                username=username,
                full_name=full_name,
                email=email,
                role=role,
                organization=organization,
                password_hash=password_hash,
                created_at=AUTO_GENERATED
            ))

    def query_user(self, username: str) -> User:
        with self._invocation("QueryUser") as repo:
            return repo.get(User, username)

    # Cases

    def create_case(self, caller: CallerContext, case_id: str, title: str, description: str,
                    jurisdiction: str, case_type: str, policy_id: str) -> None:
        """Open a case owned by the caller's organization.

        A referenced policy must exist and must admit the caller's
        organization; the role axis is not consulted at creation. Without a
        policy the caller identity is optional and an unresolved one is
        recorded as empty.
        """
        with self._invocation("CreateCase") as repo:
            case = Case(
                id=case_id,
                title=title,
                description=description,
                status=CASE_STATUS_OPEN,
                jurisdiction=jurisdiction,
                case_type=case_type,
                created_at=AUTO_GENERATED,
                policy_id=policy_id
            )
            repo.ensure_absent(case)

            organization = caller.msp_id or ""
            if policy_id:
                policy = self._query(repo).load_policy(policy_id)
                organization = caller.require_msp_id()
                decision = self.engine.evaluate_organization(policy, organization)
                if not decision.allowed:
                    raise AccessDeniedError(
                        f"organization {organization} not allowed by policy {policy_id}",
                        details={"organization": organization, "policy_id": policy_id}
                    )

            case.created_by = organization
            case.organization = organization
            repo.create(case)

    def query_case(self, caller: CallerContext, case_id: str, role: str) -> Case:
        with self._invocation("QueryCase") as repo:
            return self._query(repo).get_case(case_id, caller, role)

    def query_all_cases(self, caller: CallerContext, filters: str, role: str) -> List[Case]:
        with self._invocation("QueryAllCases") as repo:
            self._warn_ignored_filter("QueryAllCases", filters)
            return self._query(repo).list_cases(caller, role)

    def delete_case(self, case_id: str) -> None:
        with self._invocation("DeleteCase") as repo:
            repo.delete(Case, case_id)

    # Records

    def create_record(self, record_id: str, case_id: str, record_type: str, file_hash: str,
                      off_chain_uri: str, owner_org: str, created_at: str, policy_id: str,
                      description: str) -> None:
        """Store a record as supplied.

        Unlike cases, the policy reference is not checked for existence.
        """
        with self._invocation("CreateRecord") as repo:
            repo.create(Record(
                id=record_id,
                case_id=case_id,
                record_type=record_type,
                file_hash=file_hash,
                off_chain_uri=off_chain_uri,
                owner_org=owner_org,
                created_at=created_at,
                policy_id=policy_id,
                description=description
            ))

    def query_record(self, caller: CallerContext, record_id: str, role: str) -> Record:
        with self._invocation("QueryRecord") as repo:
            return self._query(repo).get_record(record_id, caller, role)

    def query_records_by_case(self, caller: CallerContext, case_id: str) -> List[Record]:
        with self._invocation("QueryRecordsByCase") as repo:
            return self._query(repo).list_records(caller, case_id=case_id)

    def query_records(self, caller: CallerContext, search: str) -> List[Record]:
        with self._invocation("QueryRecords") as repo:
            self._warn_ignored_filter("QueryRecords", search)
            return self._query(repo).list_records(caller)

    def update_record_metadata(self, record_id: str, metadata: str) -> None:
        """Merge policyId, recordType, ownerOrg and description into a record.

        Other keys and non-string values are ignored, so an update naming
        none of the four fields rewrites the record unchanged.
        """
        with self._invocation("UpdateRecordMetadata") as repo:
            record = repo.get(Record, record_id)
            update = RecordMetadataUpdate.decode(metadata)
            if update.is_empty():
                self.logger.debug("Metadata update names no recognized fields", record_id=record_id)
            repo.update_record(record, update)
