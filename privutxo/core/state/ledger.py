"""
Ledger - local record store for private UTXOs.

Conceptual Background:
---------------------
The Ledger is the principal's private view of its UTXOs: the verifier only
knows commitments and nullifiers, the ledger keeps the openings.

It is generic over the record type so the same indexing works for any
record with an ``id``, an ``owner`` and a ``commitment``. Records are
never deleted: spent UTXOs stay in place so the lineage of every output
can be walked back to its deposit.

Indexes:
-------
- id -> record
- owner -> [ids], in insertion order
- commitment -> id (commitments are unique per record)
"""

import threading
from typing import Callable, Dict, Generic, Iterable, Iterator, List, Optional, TypeVar

from privutxo.core.errors import InvariantViolation
from privutxo.utils.logger import get_logger, short_hex

logger = get_logger("ledger")

R = TypeVar("R")


class Ledger(Generic[R]):
    """
    Indexed, append-only collection of records.

    Attributes:
        records: Mapping of record id to record
        by_owner: Mapping of owner address to record ids
        by_commitment: Mapping of commitment to record id
    """

    def __init__(self, records: Optional[Iterable[R]] = None):
        self.records: Dict[str, R] = {}
        self.by_owner: Dict[str, List[str]] = {}
        self.by_commitment: Dict[object, str] = {}
        self._lock = threading.RLock()

        for record in records or ():
            self.add(record)

    # =========================================================================
    # Mutation
    # =========================================================================

    def add(self, record: R) -> None:
        """
        Insert a new record.

        Raises:
            InvariantViolation: id already present, or commitment reused
                by a different record
        """
        record_id = record.id
        with self._lock:
            if record_id in self.records:
                raise InvariantViolation(f"Duplicate record id {short_hex(record_id)}")
            other = self.by_commitment.get(record.commitment)
            if other is not None and other != record_id:
                raise InvariantViolation(f"Commitment reused by {short_hex(other)} and {short_hex(record_id)}")

            self.records[record_id] = record
            self.by_owner.setdefault(record.owner, []).append(record_id)
            self.by_commitment[record.commitment] = record_id

        logger.debug(f"Ledger add {short_hex(record_id)} owner={short_hex(record.owner)}")

    def update(self, record: R) -> None:
        """Replace an existing record in place (same id, owner and commitment)."""
        with self._lock:
            current = self.records.get(record.id)
            if current is None:
                raise KeyError(record.id)
            if current.owner != record.owner or current.commitment != record.commitment:
                raise InvariantViolation(f"Record {short_hex(record.id)} changed identity on update")
            self.records[record.id] = record

    def upsert(self, record: R) -> bool:
        """Add or replace; returns True if the record was new."""
        with self._lock:
            if record.id in self.records:
                self.update(record)
                return False
            self.add(record)
            return True

    def clear(self) -> None:
        """Forget every record (drops in-memory secrets; persistence is untouched)."""
        with self._lock:
            self.records.clear()
            self.by_owner.clear()
            self.by_commitment.clear()

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, record_id: str) -> Optional[R]:
        return self.records.get(record_id)

    def get_by_commitment(self, commitment) -> Optional[R]:
        record_id = self.by_commitment.get(commitment)
        return self.records.get(record_id) if record_id else None

    def by_owner_list(self, owner: str) -> List[R]:
        with self._lock:
            return [self.records[i] for i in self.by_owner.get(owner, [])]

    def filter(self, predicate: Callable[[R], bool]) -> List[R]:
        with self._lock:
            return [r for r in self.records.values() if predicate(r)]

    def all(self) -> List[R]:
        with self._lock:
            return list(self.records.values())

    def __contains__(self, record_id: object) -> bool:
        return record_id in self.records

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[R]:
        return iter(self.all())

    def __repr__(self) -> str:
        return f"Ledger(records={len(self.records)}, owners={len(self.by_owner)})"
