"""
Case-management ledger service.

HTTP surface over CaseManagementContract. The caller organization comes
from the identity header set by the trusted gateway; the caller role is a
plain ``role`` query argument.
"""

from typing import Dict, Optional

from fastapi import Depends, Query, Request
from pydantic import BaseModel, Field

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.logging import set_caller_context
from .contract import CaseManagementContract
from .identity import CallerContext, resolve_caller
from .ledger import LedgerStore, create_ledger_store


class CreatePolicyRequest(BaseModel):
    """Lists are JSON-encoded text, decoded by the contract."""
    policy_id: str = Field(..., description="Policy ID")
    categories: str = Field("[]", description="JSON list of categories")
    allowed_orgs: str = Field("[]", description="JSON list of allowed organizations or \"*\"")
    allowed_roles: str = Field("[]", description="JSON list of allowed roles or \"*\"")


class CreateUserRequest(BaseModel):
    username: str = Field(..., description="Unique username")
    full_name: str = Field("", description="Full name")
    email: str = Field("", description="Email address")
    role: str = Field("", description="Role")
    organization: str = Field("", description="Organization")
    password_hash: str = Field("", description="Password hash computed by the caller")


class CreateCaseRequest(BaseModel):
    id: str = Field(..., description="Case ID")
    title: str = Field("", description="Title")
    description: str = Field("", description="Description")
    jurisdiction: str = Field("", description="Jurisdiction")
    case_type: str = Field("", description="Case type")
    policy_id: str = Field("", description="Policy controlling access, empty for open access")


class CreateRecordRequest(BaseModel):
    id: str = Field(..., description="Record ID")
    case_id: str = Field("", description="Owning case ID")
    record_type: str = Field("", description="Record type")
    file_hash: str = Field("", description="Content hash")
    off_chain_uri: str = Field("", description="Off-ledger content locator")
    owner_org: str = Field("", description="Owner organization")
    created_at: str = Field("", description="Creation timestamp as supplied by the caller")
    policy_id: str = Field("", description="Policy controlling access")
    description: str = Field("", description="Description")


class UpdateMetadataRequest(BaseModel):
    metadata: str = Field("{}", description="JSON object of fields to merge")


class CdmsService(BaseService):
    """Case-management ledger service implementation."""

    def __init__(self, config: Optional[ServiceConfig] = None, store: Optional[LedgerStore] = None):
        super().__init__("cdms", config=config)

        self.store = store if store is not None else create_ledger_store(self.config)
        self.contract = CaseManagementContract(self.store, metrics=self.metrics)

        self._setup_cdms_routes()

    async def _caller(self, request: Request) -> CallerContext:
        # Must run in the request task for sync endpoints to see msp_id
        caller = resolve_caller(request.headers, self.config.identity_header)
        set_caller_context(caller.msp_id)
        return caller

    async def _optional_caller(self, request: Request) -> CallerContext:
        msp_id = (request.headers.get(self.config.identity_header) or "").strip() or None
        set_caller_context(msp_id)
        return CallerContext(msp_id=msp_id)

    def _setup_cdms_routes(self):
        """Set up ledger operation routes."""
        contract = self.contract
        caller_dependency = Depends(self._caller)
        optional_caller_dependency = Depends(self._optional_caller)

        @self.app.get("/")
        def root():
            return {
                "service": "cdms",
                "message": "Case-management ledger service",
                "version": "1.0.0",
                "ledger_backend": self.config.ledger_backend
            }

        # Policies

        @self.app.post("/policies", status_code=201)
        def create_policy(request: CreatePolicyRequest, caller: CallerContext = optional_caller_dependency):
            contract.create_policy(
                caller,
                request.policy_id,
                request.categories,
                request.allowed_orgs,
                request.allowed_roles
            )
            return {"status": "created", "policyId": request.policy_id}

        @self.app.get("/policies")
        def query_all_policies():
            return [p.to_dict() for p in contract.query_all_policies()]

        @self.app.get("/policies/{policy_id}")
        def query_policy(policy_id: str):
            return contract.query_policy(policy_id).to_dict()

        # Organizations

        @self.app.get("/organizations")
        def query_all_organizations():
            return [o.to_dict() for o in contract.query_all_organizations()]

        @self.app.get("/organizations/{org_id}")
        def query_organization(org_id: str):
            return contract.query_organization(org_id).to_dict()

        @self.app.get("/organizations/{org_id}/members")
        def query_organization_members(org_id: str):
            return contract.query_organization_members(org_id)

        # Users

        @self.app.post("/users", status_code=201)
        def create_user(request: CreateUserRequest):
            contract.create_user(
                request.username,
                request.full_name,
                request.email,
                request.role,
                request.organization,
                request.password_hash
            )
            return {"status": "created", "username": request.username}

        @self.app.get("/users/{username}")
        def query_user(username: str):
            return contract.query_user(username).to_dict()

        # Cases

        @self.app.post("/cases", status_code=201)
        def create_case(request: CreateCaseRequest, caller: CallerContext = optional_caller_dependency):
            contract.create_case(
                caller,
                request.id,
                request.title,
                request.description,
                request.jurisdiction,
                request.case_type,
                request.policy_id
            )
            return {"status": "created", "id": request.id}

        @self.app.get("/cases")
        def query_all_cases(
            filter_expr: str = Query("", alias="filter", description="Filter expression; accepted but not applied"),
            role: str = Query("", description="Caller role as reported by the caller"),
            caller: CallerContext = caller_dependency
        ):
            return [c.to_dict() for c in contract.query_all_cases(caller, filter_expr, role)]

        @self.app.get("/cases/{case_id}")
        def query_case(
            case_id: str,
            role: str = Query("", description="Caller role as reported by the caller"),
            caller: CallerContext = caller_dependency
        ):
            return contract.query_case(caller, case_id, role).to_dict()

        @self.app.delete("/cases/{case_id}")
        def delete_case(case_id: str):
            contract.delete_case(case_id)
            return {"status": "deleted", "id": case_id}

        # Records

        @self.app.post("/records", status_code=201)
        def create_record(request: CreateRecordRequest):
            contract.create_record(
                request.id,
                request.case_id,
                request.record_type,
                request.file_hash,
                request.off_chain_uri,
                request.owner_org,
                request.created_at,
                request.policy_id,
                request.description
            )
            return {"status": "created", "id": request.id}

        @self.app.get("/records")
        def query_records(
            search: str = Query("", description="Search expression; accepted but not applied"),
            caller: CallerContext = caller_dependency
        ):
            return [r.to_dict() for r in contract.query_records(caller, search)]

        @self.app.get("/records/case/{case_id}")
        def query_records_by_case(case_id: str, caller: CallerContext = caller_dependency):
            return [r.to_dict() for r in contract.query_records_by_case(caller, case_id)]

        @self.app.get("/records/{record_id}")
        def query_record(
            record_id: str,
            role: str = Query("", description="Caller role as reported by the caller"),
            caller: CallerContext = caller_dependency
        ):
            return contract.query_record(caller, record_id, role).to_dict()

        @self.app.put("/records/{record_id}/metadata")
        def update_record_metadata(record_id: str, request: UpdateMetadataRequest):
            contract.update_record_metadata(record_id, request.metadata)
            return {"status": "updated", "id": record_id}

    def _check_dependencies(self) -> Dict[str, str]:
        """Check the ledger store."""
        return {"ledger": "ok" if self.store.health_check() else "error"}

    def stop(self):
        """Release the ledger store."""
        self.store.close()
        self.logger.info("CDMS service stopped")

    def run(self):
        try:
            super().run()
        finally:
            self.stop()


def create_app(config: Optional[ServiceConfig] = None, store: Optional[LedgerStore] = None):
    """Create case-management service application."""
    service = CdmsService(config=config, store=store)
    return service.app


if __name__ == "__main__":
    service = CdmsService()
    service.run()
