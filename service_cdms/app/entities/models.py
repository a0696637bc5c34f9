"""
Entity data models for the case-management ledger.

Stored values are JSON objects with camelCase field names and a
``docType`` discriminator. Models accept either the field name or the
stored alias on input and always dump by alias.
"""

import json
from typing import Any, ClassVar, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shared.errors import InvalidInputError

# Placeholder written where the ledger has no trusted clock
AUTO_GENERATED = "auto-generated"

CASE_STATUS_OPEN = "Open"


def null_as_empty(value: Any) -> Any:
    """Stored lists may be JSON null when empty."""
    return [] if value is None else value


class LedgerEntity(BaseModel):
    """Base class for everything stored on the ledger."""

    model_config = ConfigDict(populate_by_name=True)

    DOC_TYPE: ClassVar[str] = ""
    KEY_PREFIX: ClassVar[str] = ""

    doc_type: str = Field("", alias="docType")

    def model_post_init(self, __context: Any) -> None:
        if not self.doc_type:
            self.doc_type = self.DOC_TYPE

    @classmethod
    def key_for(cls, entity_id: str) -> str:
        return f"{cls.KEY_PREFIX}:{entity_id}"

    @classmethod
    def range_bounds(cls):
        """Start and end keys covering every entity of this type."""
        return f"{cls.KEY_PREFIX}:", f"{cls.KEY_PREFIX}:\uffff"

    @property
    def entity_id(self) -> str:
        raise NotImplementedError

    @property
    def ledger_key(self) -> str:
        return self.key_for(self.entity_id)

    def to_ledger(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode("utf-8")

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class Policy(LedgerEntity):
    """Authorization rule binding allowed organizations and roles."""

    DOC_TYPE: ClassVar[str] = "policy"
    KEY_PREFIX: ClassVar[str] = "policy"

    policy_id: str = Field(..., alias="policyId")
    categories: List[str] = Field(default_factory=list)
    allowed_orgs: List[str] = Field(default_factory=list, alias="allowedOrgs")
    allowed_roles: List[str] = Field(default_factory=list, alias="allowedRoles")
    created_at: str = Field(AUTO_GENERATED, alias="createdAt")
    created_by: str = Field("", alias="createdBy")

    @field_validator("categories", "allowed_orgs", "allowed_roles", mode="before")
    @classmethod
    def lists_from_null(cls, value: Any) -> Any:
        return null_as_empty(value)

    @property
    def entity_id(self) -> str:
        return self.policy_id


class Organization(LedgerEntity):
    DOC_TYPE: ClassVar[str] = "org"
    KEY_PREFIX: ClassVar[str] = "org"

    org_id: str = Field(..., alias="orgId")
    name: str = ""
    msp_id: str = Field("", alias="mspId")
    members: List[str] = Field(default_factory=list)

    @field_validator("members", mode="before")
    @classmethod
    def members_from_null(cls, value: Any) -> Any:
        return null_as_empty(value)

    @property
    def entity_id(self) -> str:
        return self.org_id


class User(LedgerEntity):
    """Registered user. ``password_hash`` is opaque and supplied by the caller."""

    DOC_TYPE: ClassVar[str] = "user"
    KEY_PREFIX: ClassVar[str] = "user"

    username: str
    full_name: str = Field("", alias="fullName")
    email: str = ""
    role: str = ""
    organization: str = ""
    password_hash: str = Field("", alias="passwordHash")
    created_at: str = Field(AUTO_GENERATED, alias="createdAt")

    @property
    def entity_id(self) -> str:
        return self.username


class Case(LedgerEntity):
    DOC_TYPE: ClassVar[str] = "case"
    KEY_PREFIX: ClassVar[str] = "case"

    id: str
    title: str = ""
    description: str = ""
    status: str = CASE_STATUS_OPEN
    jurisdiction: str = ""
    case_type: str = Field("", alias="caseType")
    created_by: str = Field("", alias="createdBy")
    created_at: str = Field(AUTO_GENERATED, alias="createdAt")
    organization: str = ""
    policy_id: str = Field("", alias="policyId")

    @property
    def entity_id(self) -> str:
        return self.id


class Record(LedgerEntity):
    """Evidentiary record; content lives off-ledger at ``off_chain_uri``."""

    DOC_TYPE: ClassVar[str] = "record"
    KEY_PREFIX: ClassVar[str] = "record"

    id: str
    case_id: str = Field("", alias="caseId")
    record_type: str = Field("", alias="recordType")
    file_hash: str = Field("", alias="fileHash")
    off_chain_uri: str = Field("", alias="offChainUri")
    owner_org: str = Field("", alias="ownerOrg")
    created_at: str = Field("", alias="createdAt")
    policy_id: str = Field("", alias="policyId")
    description: str = ""

    @property
    def entity_id(self) -> str:
        return self.id


class RecordMetadataUpdate(BaseModel):
    """Optional field set for a record merge update.

    A field left as None is absent from the update. Keys other than the
    four below, and values that are not strings, are ignored rather than
    rejected.
    """

    ALIASES: ClassVar[Dict[str, str]] = {
        "policyId": "policy_id",
        "recordType": "record_type",
        "ownerOrg": "owner_org",
        "description": "description",
    }

    policy_id: Optional[str] = None
    record_type: Optional[str] = None
    owner_org: Optional[str] = None
    description: Optional[str] = None

    @classmethod
    def from_mapping(cls, updates: Dict[str, Any]) -> "RecordMetadataUpdate":
        fields = {
            cls.ALIASES[key]: value
            for key, value in updates.items()
            if key in cls.ALIASES and isinstance(value, str)
        }
        return cls(**fields)

    @classmethod
    def decode(cls, encoded: str) -> "RecordMetadataUpdate":
        try:
            updates = json.loads(encoded)
        except (TypeError, ValueError) as e:
            raise InvalidInputError(f"invalid metadata JSON: {e}")
        if updates is None:
            updates = {}
        if not isinstance(updates, dict):
            raise InvalidInputError("invalid metadata JSON: expected an object")
        return cls.from_mapping(updates)

    def changes(self) -> Dict[str, str]:
        """Present fields only, keyed by Record field name."""
        return self.model_dump(exclude_none=True)

    def is_empty(self) -> bool:
        return not self.changes()


def decode_string_list(encoded: str, field_name: str) -> List[str]:
    """Decode a JSON-encoded list-of-strings argument."""
    try:
        value = json.loads(encoded)
    except (TypeError, ValueError) as e:
        raise InvalidInputError(f"failed to unmarshal {field_name} JSON: {e}")
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise InvalidInputError(f"failed to unmarshal {field_name} JSON: expected a list of strings")
    return value
