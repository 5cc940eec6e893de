import json
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from privutxo.utils.logger import get_logger

logger = get_logger("storage.sqlite")


class SQLiteAdapter:
    """
    SQLite backend for persistent storage.

    Provides:
    1. Private UTXO records (JSON rows keyed by id, indexed by owner).
    2. Verifier state:
       - Commitment registry (commitment -> registered nullifier and owner)
       - Nullifier set (spent)
       - Receipts of accepted operations
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._conn_local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()

        # Ensure directory exists
        if not self.db_path.parent.exists():
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_schema()

    def _get_conn(self) -> sqlite3.Connection:
        """Get or create connection for current thread."""
        if not hasattr(self._conn_local, "conn"):
            conn = sqlite3.connect(
                self.db_path,
                timeout=30.0,
                check_same_thread=False
            )
            conn.row_factory = sqlite3.Row
            # Enable WAL mode for better concurrency
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            self._conn_local.conn = conn
            with self._connections_lock:
                self._connections.append(conn)
        return self._conn_local.conn

    def _init_schema(self):
        """Initialize database schema."""
        conn = self._get_conn()
        with conn:
            # 1. Private UTXO records (owner-local openings included)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS utxos (
                    utxo_id TEXT PRIMARY KEY,
                    owner TEXT NOT NULL,
                    data TEXT NOT NULL,
                    updated_at INTEGER NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_utxo_owner ON utxos(owner);")

            # 2. Commitment registry (verifier side)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS commitments (
                    commitment BLOB PRIMARY KEY,
                    nullifier BLOB NOT NULL,
                    owner TEXT NOT NULL,
                    token_address TEXT NOT NULL,
                    receipt_id TEXT NOT NULL
                )
            """)

            # 3. Nullifier Set (Spent Inputs)
            # Prevents double-spending
            conn.execute("""
                CREATE TABLE IF NOT EXISTS nullifiers (
                    nullifier BLOB PRIMARY KEY,
                    receipt_id TEXT NOT NULL
                )
            """)

            # 4. Receipts of accepted operations
            conn.execute("""
                CREATE TABLE IF NOT EXISTS receipts (
                    receipt_id TEXT PRIMARY KEY,
                    operation TEXT NOT NULL,
                    data TEXT NOT NULL,
                    created_at INTEGER NOT NULL
                )
            """)

    # =========================================================================
    # UTXO Records
    # =========================================================================

    def save_utxo(self, utxo_id: str, owner: str, data: Dict[str, Any]):
        conn = self._get_conn()
        with conn:
            conn.execute(
                "INSERT OR REPLACE INTO utxos (utxo_id, owner, data, updated_at) VALUES (?, ?, ?, ?)",
                (utxo_id, owner, json.dumps(data, sort_keys=True), int(time.time()))
            )

    def get_utxo(self, utxo_id: str) -> Optional[Dict[str, Any]]:
        conn = self._get_conn()
        cursor = conn.execute("SELECT data FROM utxos WHERE utxo_id = ?", (utxo_id,))
        row = cursor.fetchone()
        return json.loads(row['data']) if row else None

    def get_utxos_by_owner(self, owner: str) -> List[Dict[str, Any]]:
        conn = self._get_conn()
        cursor = conn.execute("SELECT data FROM utxos WHERE owner = ? ORDER BY rowid ASC", (owner,))
        return [json.loads(row['data']) for row in cursor]

    def count_utxos(self) -> int:
        conn = self._get_conn()
        cursor = conn.execute("SELECT COUNT(*) as cnt FROM utxos")
        return cursor.fetchone()['cnt']

    # =========================================================================
    # Verifier State
    # =========================================================================

    def is_nullifier_spent(self, nullifier: bytes) -> bool:
        conn = self._get_conn()
        cursor = conn.execute("SELECT 1 FROM nullifiers WHERE nullifier = ?", (nullifier,))
        return cursor.fetchone() is not None

    def get_all_commitments(self) -> List[Tuple[bytes, bytes, str, str]]:
        """Get all (commitment, nullifier, owner, token_address)."""
        conn = self._get_conn()
        cursor = conn.execute("SELECT commitment, nullifier, owner, token_address FROM commitments")
        return [
            (bytes(row["commitment"]), bytes(row["nullifier"]), row["owner"], row["token_address"])
            for row in cursor
        ]

    def get_all_nullifiers(self) -> List[bytes]:
        """Get all spent nullifiers."""
        conn = self._get_conn()
        cursor = conn.execute("SELECT nullifier FROM nullifiers")
        return [bytes(row['nullifier']) for row in cursor]

    def get_all_receipts(self) -> List[Dict[str, Any]]:
        conn = self._get_conn()
        cursor = conn.execute("SELECT data FROM receipts ORDER BY created_at ASC, rowid ASC")
        return [json.loads(row['data']) for row in cursor]

    def persist_operation(
        self,
        receipt_id: str,
        operation: str,
        receipt_data: Dict[str, Any],
        created_at: int,
        spent_nullifiers: List[bytes],
        new_commitments: List[Tuple[bytes, bytes, str, str]],
    ):
        """
        Atomically record an accepted operation.

        Args:
            receipt_id: Receipt identifier
            operation: deposit / split / transfer / withdraw
            receipt_data: Serialized receipt
            created_at: Unix timestamp
            spent_nullifiers: Nullifiers consumed
            new_commitments: (commitment, nullifier, owner, token_address) registered
        """
        conn = self._get_conn()
        with conn:
            conn.execute(
                "INSERT OR REPLACE INTO receipts (receipt_id, operation, data, created_at) VALUES (?, ?, ?, ?)",
                (receipt_id, operation, json.dumps(receipt_data, sort_keys=True), created_at)
            )
            for nullifier in spent_nullifiers:
                conn.execute(
                    "INSERT OR IGNORE INTO nullifiers (nullifier, receipt_id) VALUES (?, ?)",
                    (nullifier, receipt_id)
                )
            for commitment, nullifier, owner, token_address in new_commitments:
                conn.execute(
                    "INSERT OR IGNORE INTO commitments (commitment, nullifier, owner, token_address, receipt_id) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (commitment, nullifier, owner, token_address, receipt_id)
                )

    def close(self):
        """Close every connection opened by this adapter."""
        with self._connections_lock:
            for conn in self._connections:
                conn.close()
            self._connections.clear()
        self._conn_local = threading.local()
