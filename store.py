"""
Record store.

A schemaless document table over SQLite: every record is a JSON body keyed
by ``(external_id, kind)``. The pair is not unique: records written by
older pipeline versions may share it until a repair pass collapses them.
Any sqlite3 failure surfaces as StoreUnavailable.
"""

import json
import sqlite3
from typing import Optional

from errors import StoreUnavailable
from logger import get_logger

log = get_logger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS documents (
    doc_id       INTEGER PRIMARY KEY AUTOINCREMENT,
    external_id  TEXT NOT NULL,
    kind         TEXT NOT NULL,
    body         TEXT NOT NULL          -- JSON document, without _id
);
"""

_CREATE_INDEX = "CREATE INDEX IF NOT EXISTS ix_documents_key ON documents (kind, external_id);"


def _get_conn(db_path: str) -> sqlite3.Connection:
    conn = sqlite3.connect(db_path)
    conn.execute(_CREATE_TABLE)
    conn.execute(_CREATE_INDEX)
    conn.commit()
    return conn


class DocumentStore:

    def __init__(self, db_path: str):
        self.db_path = db_path
        try:
            self.conn = _get_conn(db_path)
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"cannot open record store {db_path}: {exc}") from exc
        log.debug("Record store opened: %s", db_path)

    def __enter__(self) -> "DocumentStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            cur = self.conn.execute(sql, params)
            self.conn.commit()
            return cur
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"record store {self.db_path}: {exc}") from exc

    @staticmethod
    def _load(row: tuple) -> dict:
        doc_id, body = row
        doc = json.loads(body)
        doc["_id"] = doc_id
        return doc

    def find(self, kind: Optional[str] = None, external_id: Optional[str] = None) -> list[dict]:
        """Records matching the given key parts, oldest first."""
        clauses, params = [], []
        if kind is not None:
            clauses.append("kind = ?")
            params.append(kind)
        if external_id is not None:
            clauses.append("external_id = ?")
            params.append(external_id)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self._execute(f"SELECT doc_id, body FROM documents{where} ORDER BY doc_id", tuple(params))
        return [self._load(r) for r in rows.fetchall()]

    def find_one(self, kind: str, external_id: str) -> Optional[dict]:
        found = self.find(kind, external_id)
        return found[0] if found else None

    def all(self, kind: Optional[str] = None) -> list[dict]:
        return self.find(kind)

    def insert(self, doc: dict) -> dict:
        body = {k: v for k, v in doc.items() if k != "_id"}
        cur = self._execute(
            "INSERT INTO documents (external_id, kind, body) VALUES (?, ?, ?)",
            (body["externalId"], body["kind"], json.dumps(body, ensure_ascii=False)),
        )
        body["_id"] = cur.lastrowid
        return body

    def replace(self, doc: dict) -> dict:
        body = {k: v for k, v in doc.items() if k != "_id"}
        cur = self._execute(
            "UPDATE documents SET external_id = ?, kind = ?, body = ? WHERE doc_id = ?",
            (body["externalId"], body["kind"], json.dumps(body, ensure_ascii=False), doc["_id"]),
        )
        if cur.rowcount == 0:
            raise KeyError(f"no record with _id={doc['_id']}")
        return doc

    def delete(self, doc_id: int) -> bool:
        cur = self._execute("DELETE FROM documents WHERE doc_id = ?", (doc_id,))
        return cur.rowcount > 0

    def count(self, kind: Optional[str] = None) -> int:
        if kind is None:
            row = self._execute("SELECT COUNT(*) FROM documents").fetchone()
        else:
            row = self._execute("SELECT COUNT(*) FROM documents WHERE kind = ?", (kind,)).fetchone()
        return row[0]

    def distinct_ids(self, kind: str) -> list[str]:
        rows = self._execute(
            "SELECT external_id FROM documents WHERE kind = ? GROUP BY external_id ORDER BY MIN(doc_id)",
            (kind,),
        )
        return [r[0] for r in rows.fetchall()]

    def close(self) -> None:
        self.conn.close()
