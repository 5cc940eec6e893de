from pathlib import Path
from typing import Any, Dict, List, Tuple

from privutxo.core.storage.sqlite_adapter import SQLiteAdapter
from privutxo.utils.logger import get_logger

logger = get_logger("storage.manager")


class StorageManager:
    """
    Manages persistent storage for a verifier and its UTXO repository.

    Coordinates data persistence using SQLite adapter.
    Handles:
    - Private UTXO records
    - Verifier state (commitment registry, nullifier set)
    - Receipts of accepted operations
    """

    def __init__(self, data_dir: Path, db_name: str = "privutxo.db"):
        self.data_dir = Path(data_dir)
        self.db_path = self.data_dir / db_name
        self.adapter = SQLiteAdapter(self.db_path)

        logger.info(f"StorageManager initialized at {self.db_path}")

    # =========================================================================
    # Verifier State
    # =========================================================================

    def persist_operation(
        self,
        receipt_id: str,
        operation: str,
        receipt_data: Dict[str, Any],
        created_at: int,
        spent_nullifiers: List[bytes],
        new_commitments: List[Tuple[bytes, bytes, str, str]],
    ):
        """Atomically persist an accepted operation."""
        self.adapter.persist_operation(
            receipt_id, operation, receipt_data, created_at, spent_nullifiers, new_commitments
        )

    def is_nullifier_spent(self, nullifier: bytes) -> bool:
        return self.adapter.is_nullifier_spent(nullifier)

    def load_verifier_state(self) -> Tuple[List, List, List]:
        """
        Load full verifier state.

        Returns:
            (commitments, nullifiers, receipts)
            commitments: List[(commitment, nullifier, owner, token_address)]
            nullifiers: List[bytes]
            receipts: List[dict]
        """
        commitments = self.adapter.get_all_commitments()
        nullifiers = self.adapter.get_all_nullifiers()
        receipts = self.adapter.get_all_receipts()
        return commitments, nullifiers, receipts

    # =========================================================================
    # UTXO Records
    # =========================================================================

    def persist_utxo(self, utxo_id: str, owner: str, data: Dict[str, Any]):
        self.adapter.save_utxo(utxo_id, owner, data)

    def load_utxo(self, utxo_id: str):
        return self.adapter.get_utxo(utxo_id)

    def load_utxos(self, owner: str) -> List[Dict[str, Any]]:
        return self.adapter.get_utxos_by_owner(owner)

    def utxo_count(self) -> int:
        return self.adapter.count_utxos()

    def close(self):
        self.adapter.close()
