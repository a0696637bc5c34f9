"""
Typed CRUD over a ledger transaction.
"""

import json
from typing import Iterator, Type, TypeVar

from pydantic import ValidationError

from shared.errors import AlreadyExistsError, InvalidInputError, NotFoundError
from shared.logging import get_logger
from ..ledger.store import LedgerTransaction
from .models import LedgerEntity, Record, RecordMetadataUpdate

E = TypeVar("E", bound=LedgerEntity)


class EntityRepository:
    """Entity reads and writes keyed by ``<type>:<id>``.

    Bound to a single transaction; build a new repository per invocation.
    """

    def __init__(self, txn: LedgerTransaction):
        self.txn = txn
        self.logger = get_logger("cdms.repository")

    def ensure_absent(self, entity: LedgerEntity) -> None:
        key = entity.ledger_key
        if self.txn.get_state(key) is not None:
            raise AlreadyExistsError(
                f"the {entity.DOC_TYPE} {entity.entity_id} already exists",
                details={"key": key}
            )

    def create(self, entity: LedgerEntity) -> None:
        """Write ``entity`` unless its key is already taken."""
        self.ensure_absent(entity)
        self.txn.put_state(entity.ledger_key, entity.to_ledger())
        self.logger.info("Entity created", doc_type=entity.DOC_TYPE, entity_id=entity.entity_id)

    def get(self, entity_type: Type[E], entity_id: str) -> E:
        key = entity_type.key_for(entity_id)
        raw = self.txn.get_state(key)
        if raw is None:
            raise NotFoundError(
                f"{entity_type.DOC_TYPE} {entity_id} not found",
                details={"key": key}
            )
        return self._decode(entity_type, key, raw)

    def delete(self, entity_type: Type[E], entity_id: str) -> None:
        key = entity_type.key_for(entity_id)
        if self.txn.get_state(key) is None:
            raise NotFoundError(
                f"{entity_type.DOC_TYPE} {entity_id} does not exist",
                details={"key": key}
            )
        self.txn.del_state(key)
        self.logger.info("Entity deleted", doc_type=entity_type.DOC_TYPE, entity_id=entity_id)

    def update_record(self, record: Record, update: RecordMetadataUpdate) -> Record:
        """Merge the present fields of ``update`` into ``record`` and store it."""
        merged = record.model_copy(update=update.changes())
        self.txn.put_state(merged.ledger_key, merged.to_ledger())
        self.logger.info(
            "Record metadata updated",
            entity_id=record.id,
            fields=sorted(update.changes())
        )
        return merged

    def scan(self, entity_type: Type[E]) -> Iterator[E]:
        """Yield every stored entity of ``entity_type`` in key order.

        Values carrying another ``docType`` are skipped. Values that are not
        JSON objects abort the scan.
        """
        start_key, end_key = entity_type.range_bounds()
        for key, raw in self.txn.get_state_by_range(start_key, end_key):
            document = self._load_json(key, raw)
            if document.get("docType") != entity_type.DOC_TYPE:
                continue
            yield self._validate(entity_type, key, document)

    def _decode(self, entity_type: Type[E], key: str, raw: bytes) -> E:
        return self._validate(entity_type, key, self._load_json(key, raw))

    @staticmethod
    def _load_json(key: str, raw: bytes) -> dict:
        try:
            document = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise InvalidInputError(f"stored value at {key} is not valid JSON: {e}")
        if not isinstance(document, dict):
            raise InvalidInputError(f"stored value at {key} is not a JSON object")
        return document

    @staticmethod
    def _validate(entity_type: Type[E], key: str, document: dict) -> E:
        try:
            return entity_type.model_validate(document)
        except ValidationError as e:
            raise InvalidInputError(
                f"stored value at {key} is not a valid {entity_type.DOC_TYPE}",
                details={"error_count": e.error_count()}
            )
