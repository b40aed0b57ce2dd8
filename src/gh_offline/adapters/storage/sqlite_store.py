"""
SQLite storage for the local mirror.

Schema:
- repositories: Tracked repositories
- items: Issues and pull requests (merge key: remote_id)
- labels: Repository-scoped labels
- item_labels: Item <-> label associations
- reactions: Per-kind aggregate reaction counts

Every write runs in its own connection inside BEGIN IMMEDIATE ... COMMIT, so an
item and its relations are either fully committed or not at all. WAL mode lets
readers see the last committed snapshot while a sync is writing.
"""

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from gh_offline.core.entities import (
    Item,
    ItemKind,
    ItemState,
    KindFilter,
    Label,
    MergeOutcome,
    MirroredItem,
    NormalizedItem,
    Reaction,
    ReactionKind,
    StateFilter,
    TrackedRepository,
    format_timestamp,
    parse_timestamp,
)
from gh_offline.core.errors import (
    AlreadyTracked,
    IntegrityViolation,
    ItemNotFound,
    NotTracked,
    RemoteItemConflict,
)
from gh_offline.core.interfaces import MirrorStore

logger = logging.getLogger(__name__)

DB_FILENAME = "mirror.db"

SCHEMA = """
CREATE TABLE IF NOT EXISTS repositories (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    owner TEXT NOT NULL COLLATE NOCASE,
    name TEXT NOT NULL COLLATE NOCASE,
    last_synced_at TEXT,
    UNIQUE(owner, name)
);

CREATE TABLE IF NOT EXISTS items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    repo_id INTEGER NOT NULL,
    remote_id INTEGER NOT NULL UNIQUE,
    number INTEGER NOT NULL,
    kind TEXT NOT NULL CHECK (kind IN ('issue', 'pull_request')),
    title TEXT NOT NULL,
    body TEXT NOT NULL,
    state TEXT NOT NULL CHECK (state IN ('open', 'closed')),
    author TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (repo_id) REFERENCES repositories(id) ON DELETE CASCADE,
    UNIQUE(repo_id, number)
);

CREATE TABLE IF NOT EXISTS labels (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    repo_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    color TEXT,
    FOREIGN KEY (repo_id) REFERENCES repositories(id) ON DELETE CASCADE,
    UNIQUE(repo_id, name)
);

CREATE TABLE IF NOT EXISTS item_labels (
    item_id INTEGER NOT NULL,
    label_id INTEGER NOT NULL,
    FOREIGN KEY (item_id) REFERENCES items(id) ON DELETE CASCADE,
    FOREIGN KEY (label_id) REFERENCES labels(id) ON DELETE CASCADE,
    PRIMARY KEY (item_id, label_id)
);

CREATE TABLE IF NOT EXISTS reactions (
    item_id INTEGER NOT NULL,
    kind TEXT NOT NULL,
    count INTEGER NOT NULL CHECK (count >= 0),
    FOREIGN KEY (item_id) REFERENCES items(id) ON DELETE CASCADE,
    PRIMARY KEY (item_id, kind)
);

CREATE INDEX IF NOT EXISTS idx_items_order ON items(updated_at DESC, number DESC);
CREATE INDEX IF NOT EXISTS idx_items_repo ON items(repo_id);
CREATE INDEX IF NOT EXISTS idx_item_labels_label ON item_labels(label_id);
"""

ITEM_COLUMNS = """
    i.id, i.repo_id, i.remote_id, i.number, i.kind, i.title, i.body, i.state,
    i.author, i.created_at, i.updated_at,
    r.owner AS repo_owner, r.name AS repo_name, r.last_synced_at AS repo_last_synced_at
"""


def repository_from_row(row: sqlite3.Row) -> TrackedRepository:
    """Map a repositories row to a TrackedRepository."""
    last_synced_at = row["last_synced_at"]
    return TrackedRepository(
        owner=row["owner"],
        name=row["name"],
        id=row["id"],
        last_synced_at=parse_timestamp(last_synced_at) if last_synced_at else None,
    )


def item_from_row(row: sqlite3.Row) -> Item:
    """Map an items row to an Item."""
    return Item(
        id=row["id"],
        repo_id=row["repo_id"],
        remote_id=row["remote_id"],
        number=row["number"],
        kind=ItemKind(row["kind"]),
        title=row["title"],
        body=row["body"],
        state=ItemState(row["state"]),
        author=row["author"],
        created_at=parse_timestamp(row["created_at"]),
        updated_at=parse_timestamp(row["updated_at"]),
    )


def item_to_row(item: Item) -> dict[str, Any]:
    """Map an Item to column values of the items table."""
    return {
        "repo_id": item.repo_id,
        "remote_id": item.remote_id,
        "number": item.number,
        "kind": item.kind.value,
        "title": item.title,
        "body": item.body,
        "state": item.state.value,
        "author": item.author,
        "created_at": format_timestamp(item.created_at),
        "updated_at": format_timestamp(item.updated_at),
    }


def _repository_from_item_row(row: sqlite3.Row) -> TrackedRepository:
    last_synced_at = row["repo_last_synced_at"]
    return TrackedRepository(
        owner=row["repo_owner"],
        name=row["repo_name"],
        id=row["repo_id"],
        last_synced_at=parse_timestamp(last_synced_at) if last_synced_at else None,
    )


class SQLiteStore(MirrorStore):
    """File-backed relational store for the mirror."""

    def __init__(self, db_path: Path, busy_timeout: float = 30.0) -> None:
        self.db_path = Path(db_path)
        self.busy_timeout = busy_timeout
        self._init_db()

    def _init_db(self) -> None:
        """Create the database file and schema if needed."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(SCHEMA)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(str(self.db_path), timeout=self.busy_timeout, isolation_level=None)
        try:
            conn.execute("PRAGMA foreign_keys=ON")
            conn.row_factory = sqlite3.Row
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Write transaction; rolled back on any exception."""
        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    @contextmanager
    def _snapshot(self) -> Iterator[sqlite3.Connection]:
        """Read transaction; all queries inside see one snapshot."""
        with self._connect() as conn:
            conn.execute("BEGIN")
            try:
                yield conn
            finally:
                conn.execute("COMMIT")

    # Repositories

    def add_repository(self, owner: str, name: str) -> TrackedRepository:
        repository = TrackedRepository(owner=owner, name=name)
        try:
            with self._transaction() as conn:
                cursor = conn.execute(
                    "INSERT INTO repositories (owner, name) VALUES (?, ?)",
                    (owner, name),
                )
                repo_id = cursor.lastrowid
        except sqlite3.IntegrityError:
            raise AlreadyTracked(repository.full_name)

        logger.info("Tracking %s", repository.full_name)
        return TrackedRepository(owner=owner, name=name, id=repo_id)

    def remove_repository(self, owner: str, name: str) -> None:
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM repositories WHERE owner = ? AND name = ?",
                (owner, name),
            )
            deleted = cursor.rowcount

        if deleted == 0:
            raise NotTracked(f"{owner}/{name}")
        logger.info("Removed %s/%s and its mirrored data", owner, name)

    def get_repository(self, owner: str, name: str) -> TrackedRepository:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM repositories WHERE owner = ? AND name = ?",
                (owner, name),
            ).fetchone()

        if row is None:
            raise NotTracked(f"{owner}/{name}")
        return repository_from_row(row)

    def list_repositories(self) -> list[TrackedRepository]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM repositories ORDER BY owner ASC, name ASC").fetchall()
        return [repository_from_row(row) for row in rows]

    def mark_synced(self, repository: TrackedRepository, at: datetime) -> None:
        with self._transaction() as conn:
            conn.execute(
                "UPDATE repositories SET last_synced_at = ? WHERE id = ?",
                (format_timestamp(at), repository.id),
            )

    # Items

    def upsert_item(self, repository: TrackedRepository, normalized: NormalizedItem) -> MergeOutcome:
        """Merge one item with its labels and reactions in a single transaction.

        Writes happen only when the incoming record is newer than the stored
        one, or equally new but different. Older records are reported as stale
        and never overwrite the stored copy.
        """
        if repository.id is None:
            raise ValueError("Repository must be stored before merging items")

        item = normalized.item
        try:
            with self._transaction() as conn:
                existing = conn.execute(
                    "SELECT * FROM items WHERE remote_id = ?", (item.remote_id,)
                ).fetchone()

                if existing is None:
                    item_id = self._insert_item(conn, item)
                    self._merge_labels(conn, repository.id, item_id, normalized.labels)
                    self._merge_reactions(conn, item_id, normalized.reactions)
                    return MergeOutcome.INSERTED

                if existing["repo_id"] != repository.id:
                    owner_row = conn.execute(
                        "SELECT owner, name FROM repositories WHERE id = ?", (existing["repo_id"],)
                    ).fetchone()
                    other = f"{owner_row['owner']}/{owner_row['name']}"
                    raise RemoteItemConflict(
                        f"#{item.number} (remote id {item.remote_id}) is already mirrored under {other}",
                        repository.full_name,
                        other_repository=other,
                    )

                incoming_updated_at = format_timestamp(item.updated_at)
                if incoming_updated_at < existing["updated_at"]:
                    return MergeOutcome.STALE
                if incoming_updated_at == existing["updated_at"] and not self._has_changed(
                    conn, existing, normalized
                ):
                    return MergeOutcome.UNCHANGED

                self._update_item(conn, existing["id"], item)
                self._merge_labels(conn, repository.id, existing["id"], normalized.labels)
                self._merge_reactions(conn, existing["id"], normalized.reactions)
                return MergeOutcome.UPDATED
        except sqlite3.IntegrityError as e:
            raise IntegrityViolation(f"{repository.full_name} #{item.number}: {e}") from e

    def _insert_item(self, conn: sqlite3.Connection, item: Item) -> int:
        row = item_to_row(item)
        columns = ", ".join(row)
        placeholders = ", ".join(f":{key}" for key in row)
        cursor = conn.execute(f"INSERT INTO items ({columns}) VALUES ({placeholders})", row)
        return cursor.lastrowid

    def _update_item(self, conn: sqlite3.Connection, item_id: int, item: Item) -> None:
        row = item_to_row(item)
        assignments = ", ".join(f"{key} = :{key}" for key in row if key not in ("repo_id", "remote_id"))
        conn.execute(f"UPDATE items SET {assignments} WHERE id = :id", {**row, "id": item_id})

    def _has_changed(self, conn: sqlite3.Connection, existing: sqlite3.Row, normalized: NormalizedItem) -> bool:
        """Compare an equally recent incoming record with the stored one."""
        row = item_to_row(normalized.item)
        if any(existing[key] != value for key, value in row.items()):
            return True

        stored_labels = {
            r["name"]: r["color"]
            for r in conn.execute(
                "SELECT l.name, l.color FROM item_labels il JOIN labels l ON l.id = il.label_id "
                "WHERE il.item_id = ?",
                (existing["id"],),
            )
        }
        incoming_labels = {label.name: label.color for label in normalized.labels}
        if set(stored_labels) != set(incoming_labels):
            return True
        if any(color is not None and stored_labels[name] != color for name, color in incoming_labels.items()):
            return True

        stored_reactions = {
            r["kind"]: r["count"]
            for r in conn.execute("SELECT kind, count FROM reactions WHERE item_id = ?", (existing["id"],))
        }
        return any(stored_reactions.get(r.kind.value, 0) != r.count for r in normalized.reactions)

    def _merge_labels(
        self,
        conn: sqlite3.Connection,
        repo_id: int,
        item_id: int,
        labels: tuple[Label, ...],
    ) -> None:
        label_ids = []
        for label in labels:
            conn.execute(
                """
                INSERT INTO labels (repo_id, name, color) VALUES (?, ?, ?)
                ON CONFLICT(repo_id, name) DO UPDATE SET color = excluded.color
                WHERE excluded.color IS NOT NULL AND labels.color IS NOT excluded.color
                """,
                (repo_id, label.name, label.color),
            )
            row = conn.execute(
                "SELECT id FROM labels WHERE repo_id = ? AND name = ?",
                (repo_id, label.name),
            ).fetchone()
            label_ids.append(row["id"])

        # The incoming label set replaces the item's associations
        placeholders = ", ".join("?" for _ in label_ids)
        conn.execute(
            f"DELETE FROM item_labels WHERE item_id = ? AND label_id NOT IN ({placeholders})",
            (item_id, *label_ids),
        )
        conn.executemany(
            "INSERT OR IGNORE INTO item_labels (item_id, label_id) VALUES (?, ?)",
            [(item_id, label_id) for label_id in label_ids],
        )

    def _merge_reactions(self, conn: sqlite3.Connection, item_id: int, reactions: tuple[Reaction, ...]) -> None:
        for reaction in reactions:
            if reaction.count > 0:
                conn.execute(
                    """
                    INSERT INTO reactions (item_id, kind, count) VALUES (?, ?, ?)
                    ON CONFLICT(item_id, kind) DO UPDATE SET count = excluded.count
                    WHERE reactions.count != excluded.count
                    """,
                    (item_id, reaction.kind.value, reaction.count),
                )
            else:
                # Kinds that dropped to zero keep their row
                conn.execute(
                    "UPDATE reactions SET count = 0 WHERE item_id = ? AND kind = ? AND count != 0",
                    (item_id, reaction.kind.value),
                )

    def list_items(
        self,
        repository: Optional[TrackedRepository] = None,
        state: StateFilter = StateFilter.OPEN,
        kind: KindFilter = KindFilter.ALL,
    ) -> list[MirroredItem]:
        """List items, newest update first, ties broken by number descending."""
        conditions, params = self._filter_clause(repository, state, kind)
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        with self._snapshot() as conn:
            rows = conn.execute(
                f"""
                SELECT {ITEM_COLUMNS}
                FROM items i JOIN repositories r ON r.id = i.repo_id
                {where}
                ORDER BY i.updated_at DESC, i.number DESC
                """,
                params,
            ).fetchall()

        return [MirroredItem(repository=_repository_from_item_row(row), item=item_from_row(row)) for row in rows]

    def get_item(
        self,
        number: int,
        repository: Optional[TrackedRepository] = None,
        kind: Optional[KindFilter] = None,
    ) -> MirroredItem:
        """Get one item with its labels and reactions.

        Without a repository scope the first tracked repository (by owner, name)
        holding that number wins.
        """
        conditions, params = self._filter_clause(repository, StateFilter.ALL, kind or KindFilter.ALL)
        conditions.insert(0, "i.number = ?")
        params.insert(0, number)

        with self._snapshot() as conn:
            row = conn.execute(
                f"""
                SELECT {ITEM_COLUMNS}
                FROM items i JOIN repositories r ON r.id = i.repo_id
                WHERE {' AND '.join(conditions)}
                ORDER BY r.owner ASC, r.name ASC
                LIMIT 1
                """,
                params,
            ).fetchone()

            if row is None:
                raise ItemNotFound(number, repository.full_name if repository else None)

            labels = tuple(
                Label(name=r["name"], color=r["color"])
                for r in conn.execute(
                    "SELECT l.name, l.color FROM item_labels il JOIN labels l ON l.id = il.label_id "
                    "WHERE il.item_id = ? ORDER BY l.name ASC",
                    (row["id"],),
                )
            )
            reactions = tuple(
                Reaction(kind=ReactionKind(r["kind"]), count=r["count"])
                for r in conn.execute(
                    "SELECT kind, count FROM reactions WHERE item_id = ? ORDER BY kind ASC",
                    (row["id"],),
                )
            )

        return MirroredItem(
            repository=_repository_from_item_row(row),
            item=item_from_row(row),
            labels=labels,
            reactions=reactions,
        )

    def _filter_clause(
        self,
        repository: Optional[TrackedRepository],
        state: StateFilter,
        kind: KindFilter,
    ) -> tuple[list[str], list[Any]]:
        conditions: list[str] = []
        params: list[Any] = []

        if repository is not None:
            conditions.append("r.owner = ? AND r.name = ?")
            params.extend([repository.owner, repository.name])
        if state != StateFilter.ALL:
            conditions.append("i.state = ?")
            params.append(state.value)
        if kind != KindFilter.ALL:
            conditions.append("i.kind = ?")
            params.append(kind.value)

        return conditions, params

    def get_stats(self) -> dict:
        """Get row counts overall and per repository."""
        with self._snapshot() as conn:
            totals = {
                table: conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
                for table in ("repositories", "items", "labels", "item_labels", "reactions")
            }
            by_repository = {
                f"{row['owner']}/{row['name']}": row["item_count"]
                for row in conn.execute(
                    """
                    SELECT r.owner, r.name, COUNT(i.id) AS item_count
                    FROM repositories r LEFT JOIN items i ON i.repo_id = r.id
                    GROUP BY r.id ORDER BY r.owner ASC, r.name ASC
                    """
                )
            }

        return {**totals, "by_repository": by_repository}
