"""SQLite persistence: the append-only ``nodes`` observation table."""

import dataclasses
import logging
import sqlite3
from pathlib import Path

from census.models import NodeRow

logger = logging.getLogger(__name__)

# Fails if the table already exists.
_SCHEMA = """\
CREATE TABLE nodes (
    peer_id          TEXT NOT NULL,
    observed_at      TEXT NOT NULL,
    client_type      TEXT,
    public_key       TEXT,
    software_version TEXT,
    capabilities     TEXT,
    network_id       INTEGER,
    fork_id          TEXT,
    fork_id_name     TEXT,
    block_height     TEXT,
    total_difficulty TEXT,
    head_hash        TEXT,
    ip               TEXT,
    country          TEXT,
    city             TEXT,
    coordinates      TEXT,
    first_seen       TEXT,
    last_seen        TEXT,
    seq              INTEGER,
    score            INTEGER,
    conn_type        TEXT,
    client_name      TEXT,
    client_label     TEXT,
    client_version   TEXT,
    client_os        TEXT,
    client_arch      TEXT,
    client_language  TEXT,
    PRIMARY KEY (peer_id, observed_at)
);

DELETE FROM nodes;
"""

COLUMNS: tuple[str, ...] = tuple(f.name for f in dataclasses.fields(NodeRow))

_INSERT = (
    f"INSERT INTO nodes ({', '.join(COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in COLUMNS)})"
)

_LATEST = """\
SELECT n.* FROM nodes AS n
JOIN (
    SELECT peer_id, MAX(observed_at) AS observed_at
    FROM nodes GROUP BY peer_id
) AS latest USING (peer_id, observed_at)
ORDER BY n.peer_id
"""


def connect(db_path: str) -> sqlite3.Connection:
    """Open the SQLite database at *db_path*.

    Missing parent directories are created.  The schema is not touched;
    call ``create_schema`` once against a fresh store.

    Args:
        db_path: Filesystem path for the database, or ``":memory:"`` for
            an in-memory database (useful in tests).

    Returns:
        An open ``sqlite3.Connection`` with WAL journal mode and
        ``sqlite3.Row`` rows.
    """
    if db_path != ":memory:":
        Path(db_path).expanduser().parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    conn.execute("PRAGMA journal_mode = WAL")
    conn.row_factory = sqlite3.Row
    return conn


def create_schema(conn: sqlite3.Connection) -> None:
    """Create the ``nodes`` table in a pristine store and purge its rows.

    Raises:
        sqlite3.OperationalError: If the table already exists.
    """
    conn.executescript(_SCHEMA)
    logger.debug("Created nodes table")


def schema_exists(conn: sqlite3.Connection) -> bool:
    """Return True if the ``nodes`` table is present."""
    row = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'nodes'"
    ).fetchone()
    return row is not None


def insert_rows(conn: sqlite3.Connection, rows: list[NodeRow]) -> None:
    """Insert observation rows.

    Does not commit; the caller owns the transaction.

    Raises:
        sqlite3.IntegrityError: If a ``(peer_id, observed_at)`` pair exists.
    """
    conn.executemany(_INSERT, [dataclasses.astuple(row) for row in rows])


def fetch_observations(
    conn: sqlite3.Connection,
    *,
    latest_only: bool = True,
) -> list[sqlite3.Row]:
    """Return stored observations.

    Args:
        conn: Open database connection.
        latest_only: Only return the most recent observation per peer.

    Returns:
        Rows ordered by peer id (and observation time for the full series).
    """
    if latest_only:
        return conn.execute(_LATEST).fetchall()
    return conn.execute(
        "SELECT * FROM nodes ORDER BY peer_id, observed_at"
    ).fetchall()
