"""
UTXO repositories.

The service reads and writes owner-scoped UTXO records through a
repository so that several principals (each with its own service) can
share one backing store: outputs created for B by A's split land under
B's owner key, and B's service picks them up on sync().
"""

import copy
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Union

from privutxo.core.state.utxo import UTXO
from privutxo.core.storage.storage_manager import StorageManager
from privutxo.utils.logger import get_logger, short_hex

logger = get_logger("storage.repository")


class UTXORepository(ABC):
    """Owner-scoped UTXO persistence."""

    @abstractmethod
    def get(self, owner: str) -> List[UTXO]:
        """All records stored under owner, oldest first."""

    @abstractmethod
    def put(self, owner: str, utxo: UTXO) -> None:
        """Insert or replace a record under owner."""

    def put_many(self, utxos: List[UTXO]) -> None:
        for utxo in utxos:
            self.put(utxo.owner, utxo)

    def close(self) -> None:
        pass


class InMemoryUTXORepository(UTXORepository):
    """
    Dict-backed repository.

    Records are stored as copies so callers cannot mutate repository
    state by holding on to a returned object.
    """

    def __init__(self):
        self._records: Dict[str, Dict[str, UTXO]] = {}
        self._lock = threading.Lock()

    def get(self, owner: str) -> List[UTXO]:
        with self._lock:
            return [copy.deepcopy(u) for u in self._records.get(owner.lower(), {}).values()]

    def put(self, owner: str, utxo: UTXO) -> None:
        with self._lock:
            self._records.setdefault(owner.lower(), {})[utxo.id] = copy.deepcopy(utxo)

    def __len__(self) -> int:
        return sum(len(v) for v in self._records.values())


class SQLiteUTXORepository(UTXORepository):
    """Repository backed by the SQLite utxos table (JSON rows)."""

    def __init__(self, storage: Union[StorageManager, Path, str]):
        if not isinstance(storage, StorageManager):
            storage = StorageManager(Path(storage))
        self.storage = storage

    def get(self, owner: str) -> List[UTXO]:
        return [UTXO.from_dict(d) for d in self.storage.load_utxos(owner.lower())]

    def get_by_id(self, utxo_id: str) -> Optional[UTXO]:
        data = self.storage.load_utxo(utxo_id)
        return UTXO.from_dict(data) if data else None

    def put(self, owner: str, utxo: UTXO) -> None:
        self.storage.persist_utxo(utxo.id, owner.lower(), utxo.to_dict())
        logger.debug(f"Persisted UTXO {short_hex(utxo.id)} for {short_hex(owner)}")

    def close(self) -> None:
        self.storage.close()

    def __len__(self) -> int:
        return self.storage.utxo_count()
