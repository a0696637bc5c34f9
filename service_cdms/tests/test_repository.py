"""
Unit tests for the entity repository.
"""

import json

import pytest

from shared.errors import AlreadyExistsError, InvalidInputError, NotFoundError
from service_cdms.app.entities.models import (
    Case, Organization, Policy, Record, RecordMetadataUpdate, User,
)
from service_cdms.app.entities.repository import EntityRepository


def sample_record(**overrides):
    fields = dict(
        id="R1",
        case_id="C1",
        record_type="Evidence",
        file_hash="abc123",
        off_chain_uri="minio://evidence/R1",
        owner_org="OrgA",
        created_at="2024-05-01T10:00:00Z",
        policy_id="P1",
        description="Photo of the scene"
    )
    fields.update(overrides)
    return Record(**fields)


class TestEntityRepository:
    """Test cases for EntityRepository."""

    @pytest.fixture
    def write(self, store):
        def _write(*entities):
            with store.transaction() as txn:
                repo = EntityRepository(txn)
                for entity in entities:
                    repo.create(entity)
        return _write

    @pytest.fixture
    def raw_write(self, store):
        def _raw_write(key, value):
            with store.transaction() as txn:
                txn.put_state(key, value)
        return _raw_write

    def test_create_and_get(self, store, write):
        write(User(username="alice", full_name="Alice A", role="Investigator", organization="OrgA"))

        with store.transaction() as txn:
            user = EntityRepository(txn).get(User, "alice")

        assert user.full_name == "Alice A"
        assert user.doc_type == "user"
        assert user.created_at == "auto-generated"

    def test_stored_format_uses_camel_case_and_doc_type(self, store, write):
        write(Case(id="C1", title="Burglary", case_type="Theft", policy_id="P1"))

        with store.transaction() as txn:
            stored = json.loads(txn.get_state("case:C1"))

        assert stored["docType"] == "case"
        assert stored["caseType"] == "Theft"
        assert stored["policyId"] == "P1"
        assert stored["status"] == "Open"

    def test_create_duplicate_fails_and_keeps_original(self, store, write):
        write(Policy(policy_id="P1", allowed_orgs=["OrgA"]))

        with pytest.raises(AlreadyExistsError):
            write(Policy(policy_id="P1", allowed_orgs=["OrgB"]))

        with store.transaction() as txn:
            policy = EntityRepository(txn).get(Policy, "P1")
        assert policy.allowed_orgs == ["OrgA"]

    @pytest.mark.parametrize("entity_type", [Policy, Organization, User, Case, Record])
    def test_get_missing_raises_not_found(self, store, entity_type):
        with store.transaction() as txn:
            with pytest.raises(NotFoundError):
                EntityRepository(txn).get(entity_type, "nope")

    def test_get_malformed_value_raises_invalid_input(self, store, raw_write):
        raw_write("case:C1", b"{not json")

        with store.transaction() as txn:
            with pytest.raises(InvalidInputError):
                EntityRepository(txn).get(Case, "C1")

    def test_get_invalid_shape_raises_invalid_input(self, store, raw_write):
        raw_write("case:C1", json.dumps({"docType": "case", "title": ["wrong"]}).encode())

        with store.transaction() as txn:
            with pytest.raises(InvalidInputError):
                EntityRepository(txn).get(Case, "C1")

    def test_delete(self, store, write):
        write(Case(id="C1"))

        with store.transaction() as txn:
            EntityRepository(txn).delete(Case, "C1")

        with store.transaction() as txn:
            with pytest.raises(NotFoundError):
                EntityRepository(txn).get(Case, "C1")

    def test_delete_missing_raises_not_found(self, store):
        with store.transaction() as txn:
            with pytest.raises(NotFoundError):
                EntityRepository(txn).delete(Case, "C404")

    def test_update_record_changes_only_present_fields(self, store, write):
        write(sample_record())

        with store.transaction() as txn:
            repo = EntityRepository(txn)
            repo.update_record(repo.get(Record, "R1"), RecordMetadataUpdate(description="x"))

        with store.transaction() as txn:
            record = EntityRepository(txn).get(Record, "R1")
        assert record == sample_record(description="x")

    def test_scan_returns_key_order(self, store, write):
        write(Case(id="C3"), Case(id="C1"), Case(id="C2"))

        with store.transaction() as txn:
            ids = [c.id for c in EntityRepository(txn).scan(Case)]

        assert ids == ["C1", "C2", "C3"]

    def test_scan_skips_foreign_doc_type(self, store, write, raw_write):
        write(Case(id="C1"))
        raw_write("case:zz", json.dumps({"docType": "record", "id": "zz"}).encode())

        with store.transaction() as txn:
            ids = [c.id for c in EntityRepository(txn).scan(Case)]

        assert ids == ["C1"]

    def test_scan_aborts_on_corrupt_value(self, store, write, raw_write):
        write(Case(id="C1"))
        raw_write("case:C2", b"\x00garbage")

        with store.transaction() as txn:
            with pytest.raises(InvalidInputError):
                list(EntityRepository(txn).scan(Case))

    def test_null_lists_read_as_empty(self, store, raw_write):
        raw_write("org:org1", json.dumps({
            "docType": "org", "orgId": "org1", "name": "Lab", "mspId": "Org1MSP", "members": None
        }).encode())
        raw_write("policy:P1", json.dumps({
            "docType": "policy", "policyId": "P1", "categories": None,
            "allowedOrgs": None, "allowedRoles": None,
            "createdAt": "auto-generated", "createdBy": "OrgA"
        }).encode())

        with store.transaction() as txn:
            repo = EntityRepository(txn)
            org = repo.get(Organization, "org1")
            policies = list(repo.scan(Policy))

        assert org.members == []
        assert policies[0].categories == []
        assert policies[0].allowed_orgs == []
        assert policies[0].allowed_roles == []

    def test_scan_empty(self, store):
        with store.transaction() as txn:
            assert list(EntityRepository(txn).scan(Organization)) == []


class TestRecordMetadataUpdate:
    """Test cases for decoding merge updates."""

    def test_recognized_string_fields(self):
        update = RecordMetadataUpdate.decode(json.dumps({
            "policyId": "P2",
            "recordType": "Report",
            "ownerOrg": "OrgB",
            "description": "updated"
        }))

        assert update.changes() == {
            "policy_id": "P2",
            "record_type": "Report",
            "owner_org": "OrgB",
            "description": "updated"
        }

    def test_unrecognized_and_non_string_values_are_ignored(self):
        update = RecordMetadataUpdate.decode(json.dumps({
            "fileHash": "tampered",
            "caseId": "C9",
            "description": 42,
            "recordType": None
        }))

        assert update.is_empty()

    def test_empty_object(self):
        assert RecordMetadataUpdate.decode("{}").is_empty()

    def test_null_is_empty_update(self):
        assert RecordMetadataUpdate.decode("null").is_empty()

    @pytest.mark.parametrize("encoded", ["not json", "[1, 2]", "\"text\"", ""])
    def test_non_object_is_invalid(self, encoded):
        with pytest.raises(InvalidInputError):
            RecordMetadataUpdate.decode(encoded)
