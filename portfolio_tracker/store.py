"""Record store interface and a local JSON file implementation."""

import json
import logging
from pathlib import Path
from typing import Any, Iterable, Protocol

from .exceptions import CorruptStoreError
from .ledger import TradeBook
from .loaders import ingest_rows, store_rows
from .models import to_decimal

logger = logging.getLogger(__name__)

Record = dict[str, Any]

TRADES = "trades"
POSITIONS = "positions"
SETTINGS = "settings"


class RecordStore(Protocol):
    """Per-user collections of records addressed by key."""

    def get(self, user_id: str, collection: str) -> list[Record]: ...

    def upsert(self, user_id: str, collection: str, records: Iterable[Record]) -> None: ...

    def delete(self, user_id: str, collection: str, ids: Iterable[str]) -> None: ...


def record_key(record: Record) -> str:
    """Trades and settings carry an id; positions are keyed by symbol and account."""
    if record.get("id"):
        return str(record["id"])
    return f"{record.get('symbol', '')}:{record.get('account', '')}"


class JsonFileStore:
    """Keeps one JSON document per user under ``root``.

    An unparseable document raises CorruptStoreError and is never overwritten.
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def _path(self, user_id: str) -> Path:
        return self.root / f"{user_id}.json"

    def _read(self, user_id: str) -> dict[str, list[Record]]:
        path = self._path(user_id)
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.error("Refusing to use corrupt store file %s: %s", path, e)
            raise CorruptStoreError(str(path), str(e)) from e
        if not isinstance(data, dict):
            raise CorruptStoreError(str(path), "expected a JSON object")
        return data

    def _write(self, user_id: str, data: dict[str, list[Record]]) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        self._path(user_id).write_text(json.dumps(data, indent=2), encoding="utf-8")

    def get(self, user_id: str, collection: str) -> list[Record]:
        return list(self._read(user_id).get(collection, []))

    def upsert(self, user_id: str, collection: str, records: Iterable[Record]) -> None:
        data = self._read(user_id)
        by_key = {record_key(r): r for r in data.get(collection, [])}
        for record in records:
            by_key[record_key(record)] = record
        data[collection] = list(by_key.values())
        self._write(user_id, data)

    def delete(self, user_id: str, collection: str, ids: Iterable[str]) -> None:
        doomed = set(ids)
        data = self._read(user_id)
        data[collection] = [r for r in data.get(collection, []) if record_key(r) not in doomed]
        self._write(user_id, data)


def _replace_collection(
    store: RecordStore, user_id: str, collection: str, records: list[Record]
) -> None:
    keep = {record_key(r) for r in records}
    stale = [record_key(r) for r in store.get(user_id, collection) if record_key(r) not in keep]
    if stale:
        store.delete(user_id, collection, stale)
    store.upsert(user_id, collection, records)


def save_book(store: RecordStore, user_id: str, book: TradeBook) -> None:
    """Write the full trade list, derived positions and cash balance."""
    _replace_collection(store, user_id, TRADES, [t.to_record() for t in book.trades])
    _replace_collection(store, user_id, POSITIONS, [p.to_record() for p in book.positions])
    store.upsert(user_id, SETTINGS, [{"id": "cash_balance", "value": str(book.cash_balance)}])


def load_book(store: RecordStore, user_id: str) -> TradeBook:
    """Load trades, re-validate them and recompute positions from scratch."""
    result = ingest_rows(store_rows(store.get(user_id, TRADES)))
    if result.rejected:
        logger.warning(
            "Dropped %d invalid stored trades for %s", len(result.rejected), user_id
        )

    settings = {r.get("id"): r.get("value") for r in store.get(user_id, SETTINGS)}
    return TradeBook.from_trades(result.trades, to_decimal(settings.get("cash_balance")))
