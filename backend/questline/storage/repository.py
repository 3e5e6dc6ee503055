from __future__ import annotations

import copy
import json
from datetime import datetime
from pathlib import Path
from threading import RLock
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import DateTime, Integer, String, Text, create_engine, select
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

# table -> indexed field tuples
DEFAULT_INDEXES: Dict[str, List[Tuple[str, ...]]] = {
    "players": [("game_id",)],
    "night_actions": [("game_id",), ("game_id", "round")],
    "votes": [("game_id",), ("game_id", "round")],
    "tasks": [("game_id",), ("game_id", "status"), ("status",)],
    "events": [("game_id",), ("game_id", "round")],
}


class InMemoryStore:
    """Thread-safe document store keyed by id with equality indexes.

    Documents are copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self, indexes: Optional[Dict[str, List[Tuple[str, ...]]]] = None) -> None:
        self._lock = RLock()
        self._index_fields = dict(indexes or DEFAULT_INDEXES)
        self._tables: Dict[str, Dict[str, dict]] = {}
        self._indexes: Dict[str, Dict[Tuple[str, ...], Dict[tuple, set]]] = {}

    def _table(self, table: str) -> Dict[str, dict]:
        if table not in self._tables:
            self._tables[table] = {}
            self._indexes[table] = {fields: {} for fields in self._index_fields.get(table, [])}
        return self._tables[table]

    def _index_add(self, table: str, doc_id: str, doc: dict) -> None:
        for fields, buckets in self._indexes[table].items():
            key = tuple(doc.get(f) for f in fields)
            buckets.setdefault(key, set()).add(doc_id)

    def _index_remove(self, table: str, doc_id: str, doc: dict) -> None:
        for fields, buckets in self._indexes[table].items():
            key = tuple(doc.get(f) for f in fields)
            ids = buckets.get(key)
            if ids is not None:
                ids.discard(doc_id)
                if not ids:
                    buckets.pop(key, None)

    def get(self, table: str, doc_id: str) -> Optional[dict]:
        with self._lock:
            doc = self._table(table).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def insert(self, table: str, doc_id: str, doc: dict) -> dict:
        with self._lock:
            rows = self._table(table)
            if doc_id in rows:
                raise KeyError(f"duplicate id in {table}: {doc_id}")
            stored = copy.deepcopy(doc)
            stored["id"] = doc_id
            rows[doc_id] = stored
            self._index_add(table, doc_id, stored)
            return copy.deepcopy(stored)

    def upsert(self, table: str, doc_id: str, doc: dict) -> dict:
        with self._lock:
            if doc_id in self._table(table):
                self.delete(table, doc_id)
            return self.insert(table, doc_id, doc)

    def patch(self, table: str, doc_id: str, changes: Dict[str, Any]) -> dict:
        with self._lock:
            rows = self._table(table)
            current = rows.get(doc_id)
            if current is None:
                raise KeyError(f"{table} not found: {doc_id}")
            self._index_remove(table, doc_id, current)
            current.update(copy.deepcopy(changes))
            current["id"] = doc_id
            self._index_add(table, doc_id, current)
            return copy.deepcopy(current)

    def delete(self, table: str, doc_id: str) -> bool:
        with self._lock:
            rows = self._table(table)
            current = rows.pop(doc_id, None)
            if current is None:
                return False
            self._index_remove(table, doc_id, current)
            return True

    def query(self, table: str, **where: Any) -> List[dict]:
        with self._lock:
            rows = self._table(table)
            fields = tuple(sorted(where))
            index = None
            for indexed_fields, buckets in self._indexes[table].items():
                if tuple(sorted(indexed_fields)) == fields:
                    index = (indexed_fields, buckets)
                    break
            if index is not None:
                indexed_fields, buckets = index
                ids = buckets.get(tuple(where[f] for f in indexed_fields), set())
                docs = [rows[i] for i in ids]
            else:
                docs = [d for d in rows.values() if all(d.get(k) == v for k, v in where.items())]
            docs.sort(key=lambda d: (d.get("seq", 0), d["id"]))
            return [copy.deepcopy(d) for d in docs]

    def delete_where(self, table: str, **where: Any) -> int:
        with self._lock:
            removed = 0
            for doc in self.query(table, **where):
                removed += int(self.delete(table, doc["id"]))
            return removed


class Base(DeclarativeBase):
    pass


class GameRecord(Base):
    __tablename__ = "game_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    game_id: Mapped[str] = mapped_column(String(64), index=True)
    winner: Mapped[str] = mapped_column(String(16))
    rounds: Mapped[int] = mapped_column(Integer)
    payload_json: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class SQLiteRepository:
    """Archive of finished games."""

    def __init__(self, db_path: str = "./questline.db") -> None:
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.engine = create_engine(f"sqlite:///{db_path}", future=True)
        self.session_factory = sessionmaker(bind=self.engine, class_=Session, expire_on_commit=False)
        Base.metadata.create_all(self.engine)

    def save_finished_game(self, game_id: str, winner: str, rounds: int, payload: dict) -> int:
        with self.session_factory() as session:
            row = GameRecord(
                game_id=game_id,
                winner=winner,
                rounds=rounds,
                payload_json=json.dumps(payload, ensure_ascii=False, default=str),
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return row.id

    def get_game_record(self, record_id: int) -> Optional[dict]:
        with self.session_factory() as session:
            row = session.get(GameRecord, record_id)
            if not row:
                return None
            return self._to_dict(row)

    def records_for_game(self, game_id: str) -> List[dict]:
        with self.session_factory() as session:
            rows = session.scalars(select(GameRecord).where(GameRecord.game_id == game_id).order_by(GameRecord.id))
            return [self._to_dict(row) for row in rows]

    @staticmethod
    def _to_dict(row: GameRecord) -> dict:
        return {
            "id": row.id,
            "game_id": row.game_id,
            "winner": row.winner,
            "rounds": row.rounds,
            "payload": json.loads(row.payload_json),
            "created_at": row.created_at.isoformat(),
        }
