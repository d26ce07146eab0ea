"""
Persistent stores for dip positions.

Both backends keep one row per position attempt with the columns
id, symbol, entry_price, amount, entry_time, entry_tier, status,
exit_price, exit_time, profit, exit_reason.
"""

import json
import logging
import shutil
import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..exceptions import PositionStoreError
from ..models import Position, PositionStatus

logger = logging.getLogger(__name__)

COLUMNS = (
    "id", "symbol", "entry_price", "amount", "entry_time", "entry_tier",
    "status", "exit_price", "exit_time", "profit", "exit_reason",
)
UPDATABLE_COLUMNS = frozenset(COLUMNS) - {"id", "symbol"}

DEFAULT_DATA_DIR = Path.home() / ".tiered_dip_buyer"


def _to_column(value: Any) -> Any:
    """Convert a model value to its stored representation."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _check_fields(fields: Dict[str, Any]) -> None:
    unknown = set(fields) - UPDATABLE_COLUMNS
    if unknown:
        raise PositionStoreError(f"Cannot update columns: {sorted(unknown)}")


class PositionStore(ABC):
    """Storage contract used by the position ledger."""

    @abstractmethod
    def initialize(self) -> None:
        """Create the schema or load the backing file."""

    @abstractmethod
    def select_open(self) -> List[Position]:
        """All positions with status open."""

    @abstractmethod
    def select_closed(self) -> List[Position]:
        """All closed positions, oldest first."""

    @abstractmethod
    def insert(self, position: Position) -> int:
        """Insert a new row and return its id."""

    @abstractmethod
    def update(self, position_id: int, fields: Dict[str, Any]) -> None:
        """Update columns of the row with the given id."""

    def close(self) -> None:
        """Release any held resources."""


class SqlitePositionStore(PositionStore):
    """SQLite-backed store using the `dip_positions` table."""

    TABLE = "dip_positions"

    def __init__(self, db_path: Optional[str] = None):
        """
        Args:
            db_path: Database file. If None, uses ~/.tiered_dip_buyer/positions.db.
                     ':memory:' is accepted for tests.
        """
        if db_path is None:
            DEFAULT_DATA_DIR.mkdir(parents=True, exist_ok=True)
            db_path = str(DEFAULT_DATA_DIR / "positions.db")
        elif db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        logger.debug(f"SqlitePositionStore using {self.db_path}")

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(self.db_path)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def initialize(self) -> None:
        try:
            with self.conn:
                self.conn.execute(f"""
                    CREATE TABLE IF NOT EXISTS {self.TABLE} (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        symbol TEXT NOT NULL,
                        entry_price REAL NOT NULL,
                        amount REAL NOT NULL,
                        entry_time TEXT NOT NULL,
                        entry_tier INTEGER DEFAULT 1,
                        status TEXT DEFAULT 'open',
                        exit_price REAL,
                        exit_time TEXT,
                        profit REAL,
                        exit_reason TEXT
                    )
                """)
        except sqlite3.Error as e:
            raise PositionStoreError(f"Failed to initialize {self.db_path}: {e}") from e

    def select_open(self) -> List[Position]:
        return self._select("status = ?", (PositionStatus.OPEN.value,))

    def select_closed(self) -> List[Position]:
        return self._select("status = ?", (PositionStatus.CLOSED.value,))

    def insert(self, position: Position) -> int:
        row = {c: _to_column(getattr(position, c)) for c in COLUMNS if c != "id"}
        placeholders = ", ".join("?" for _ in row)
        try:
            with self.conn:
                cursor = self.conn.execute(
                    f"INSERT INTO {self.TABLE} ({', '.join(row)}) VALUES ({placeholders})",
                    tuple(row.values()),
                )
        except sqlite3.Error as e:
            raise PositionStoreError(f"Failed to insert {position.symbol} position: {e}") from e
        return cursor.lastrowid

    def update(self, position_id: int, fields: Dict[str, Any]) -> None:
        _check_fields(fields)
        assignments = ", ".join(f"{column} = ?" for column in fields)
        values = tuple(_to_column(v) for v in fields.values()) + (position_id,)
        try:
            with self.conn:
                cursor = self.conn.execute(
                    f"UPDATE {self.TABLE} SET {assignments} WHERE id = ?", values
                )
        except sqlite3.Error as e:
            raise PositionStoreError(f"Failed to update position {position_id}: {e}") from e
        if cursor.rowcount == 0:
            raise PositionStoreError(f"Position {position_id} not found")

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _select(self, where: str, params: tuple) -> List[Position]:
        try:
            rows = self.conn.execute(
                f"SELECT * FROM {self.TABLE} WHERE {where} ORDER BY id", params
            ).fetchall()
        except sqlite3.Error as e:
            raise PositionStoreError(f"Failed to read positions: {e}") from e
        return [Position.model_validate(dict(row)) for row in rows]


class JsonPositionStore(PositionStore):
    """JSON-file store with atomic writes and backup recovery."""

    DEFAULT_FILENAME = "positions.json"
    BACKUP_SUFFIX = ".backup"

    def __init__(self, data_dir: Optional[str] = None):
        """
        Args:
            data_dir: Directory for the positions file. If None, uses ~/.tiered_dip_buyer.
        """
        self._data_dir = Path(data_dir) if data_dir is not None else DEFAULT_DATA_DIR
        self._data_dir.mkdir(parents=True, exist_ok=True)
        self._rows: List[Dict[str, Any]] = []
        self._next_id = 1
        logger.debug(f"JsonPositionStore initialized with directory: {self._data_dir}")

    def get_file_path(self) -> Path:
        return self._data_dir / self.DEFAULT_FILENAME

    def get_backup_file_path(self) -> Path:
        return self._data_dir / (self.DEFAULT_FILENAME + self.BACKUP_SUFFIX)

    def initialize(self) -> None:
        """Load rows from the main file, falling back to the backup file."""
        main_file = self.get_file_path()
        backup_file = self.get_backup_file_path()

        data = self._load_from_file(main_file)

        if data is None and backup_file.exists():
            logger.warning("Main positions file corrupted or missing, attempting to load from backup")
            data = self._load_from_file(backup_file)

            if data is not None:
                logger.info("Successfully recovered positions from backup file")
                self._rows, self._next_id = data
                self._save(self._rows, self._next_id)
                return

        if data is None:
            logger.info("No valid positions file found, starting with empty history")
            self._rows, self._next_id = [], 1
            return

        self._rows, self._next_id = data

    def select_open(self) -> List[Position]:
        return [Position.model_validate(r) for r in self._rows if r["status"] == PositionStatus.OPEN.value]

    def select_closed(self) -> List[Position]:
        return [Position.model_validate(r) for r in self._rows if r["status"] == PositionStatus.CLOSED.value]

    def insert(self, position: Position) -> int:
        row = {c: _to_column(getattr(position, c)) for c in COLUMNS}
        row["id"] = self._next_id
        rows = self._rows + [row]
        self._save(rows, self._next_id + 1)
        self._rows, self._next_id = rows, self._next_id + 1
        return row["id"]

    def update(self, position_id: int, fields: Dict[str, Any]) -> None:
        _check_fields(fields)
        if not any(r["id"] == position_id for r in self._rows):
            raise PositionStoreError(f"Position {position_id} not found")

        changes = {k: _to_column(v) for k, v in fields.items()}
        rows = [dict(r, **changes) if r["id"] == position_id else r for r in self._rows]
        self._save(rows, self._next_id)
        self._rows = rows

    def _save(self, rows: List[Dict[str, Any]], next_id: int) -> None:
        """
        Write rows atomically, keeping a backup of the previous file.

        Raises:
            PositionStoreError: If the write fails. The in-memory rows are left
            unchanged by callers in that case.
        """
        main_file = self.get_file_path()
        backup_file = self.get_backup_file_path()

        try:
            # Create backup of existing file if it exists
            if main_file.exists():
                shutil.copy2(main_file, backup_file)

            # Write to temporary file first (atomic write)
            temp_file = main_file.with_suffix('.tmp')
            with open(temp_file, 'w', encoding='utf-8') as f:
                json.dump({
                    'positions': rows,
                    'next_id': next_id,
                    'last_updated': datetime.now().isoformat()
                }, f, indent=2, default=str)

            temp_file.replace(main_file)

        except OSError as e:
            logger.error(f"Failed to save positions to {main_file}: {e}")
            raise PositionStoreError(f"Failed to save positions: {e}") from e

    def _load_from_file(self, file_path: Path) -> Optional[tuple]:
        """
        Load rows from a specific file.

        Returns:
            (rows, next_id) or None if the file is missing or corrupted
        """
        if not file_path.exists():
            logger.debug(f"Positions file does not exist: {file_path}")
            return None

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                data = json.load(f)

            rows = data.get('positions', [])
            # Validate every row before accepting the file
            for row in rows:
                Position.model_validate(row)

            next_id = data.get('next_id') or max((r['id'] for r in rows), default=0) + 1
            logger.info(f"Successfully loaded {len(rows)} positions from {file_path}")
            return rows, next_id

        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON in positions file {file_path}: {e}")
            self._handle_corrupted_file(file_path)
            return None

        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Failed to load positions from {file_path}: {e}")
            self._handle_corrupted_file(file_path)
            return None

    def _handle_corrupted_file(self, file_path: Path) -> None:
        """Move a corrupted file aside so it is not read again."""
        try:
            corrupted_backup = file_path.with_suffix(f'.corrupted.{datetime.now().strftime("%Y%m%d_%H%M%S")}')
            shutil.move(file_path, corrupted_backup)
            logger.warning(f"Moved corrupted positions file to {corrupted_backup}")
        except OSError as e:
            logger.error(f"Failed to backup corrupted file {file_path}: {e}")


def create_position_store(backend: str, path: Optional[str] = None) -> PositionStore:
    """Build the configured store backend."""
    if path is not None and path != ":memory:":
        path = str(Path(path).expanduser())
    if backend == "sqlite":
        return SqlitePositionStore(path)
    if backend == "json":
        return JsonPositionStore(path)
    raise PositionStoreError(f"Unknown position store backend: {backend}")
