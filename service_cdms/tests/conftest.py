"""
Shared fixtures for the case-management ledger tests.
"""

import pytest

from service_cdms.app.contract import CaseManagementContract
from service_cdms.app.entities.models import Organization
from service_cdms.app.entities.repository import EntityRepository
from service_cdms.app.identity import CallerContext
from service_cdms.app.ledger.store import MemoryLedgerStore


@pytest.fixture
def store():
    """Empty in-memory ledger."""
    return MemoryLedgerStore()


@pytest.fixture
def contract(store):
    """Contract over the in-memory ledger."""
    return CaseManagementContract(store)


@pytest.fixture
def org_a():
    return CallerContext(msp_id="OrgA")


@pytest.fixture
def org_b():
    return CallerContext(msp_id="OrgB")


@pytest.fixture
def seed_organizations(store):
    """Write organizations straight to the ledger; no operation creates them."""
    def _seed(*organizations):
        with store.transaction() as txn:
            repo = EntityRepository(txn)
            for org in organizations:
                repo.create(org)
    return _seed


@pytest.fixture
def sample_organizations():
    return [
        Organization(org_id="org2", name="Forensics Lab", msp_id="Org2MSP", members=["carol"]),
        Organization(org_id="org1", name="City Police", msp_id="Org1MSP", members=["alice", "bob"]),
    ]
