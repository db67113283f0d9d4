"""Database workloads against an in-memory SQLite store.

Setup creates and seeds a private ``:memory:`` database for the run;
teardown closes it, which discards every row. Each run checks the row
counts it touched and raises RuntimeError when they are off.
"""

import random
import sqlite3
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from perfbench.domain.value_objects import ParameterSpace, Scalar, WorkloadDescriptor

SEED = 42
POSTS_PER_BLOG = 10
TOP_ROWS = 100
JOIN_BLOG_LIMIT = 10
BULK_ROWS = 1_000

SCHEMA = """
CREATE TABLE blogs (
    blog_id INTEGER PRIMARY KEY,
    url TEXT NOT NULL
);
CREATE TABLE posts (
    post_id INTEGER PRIMARY KEY,
    blog_id INTEGER NOT NULL REFERENCES blogs(blog_id),
    title TEXT NOT NULL,
    content TEXT NOT NULL
);
CREATE INDEX idx_posts_blog ON posts(blog_id);
CREATE TABLE orders (
    order_id INTEGER PRIMARY KEY,
    blog_id INTEGER NOT NULL,
    ordered_at TEXT NOT NULL
);
"""


@dataclass
class DatabaseState:
    connection: sqlite3.Connection
    blogs: int


def _database_setup(params: Mapping[str, Scalar], fixtures: Mapping[str, Any]) -> DatabaseState:
    blogs = int(params["blogs"])
    connection = sqlite3.connect(":memory:")
    connection.executescript(SCHEMA)

    rng = random.Random(SEED)
    connection.executemany(
        "INSERT INTO blogs (blog_id, url) VALUES (?, ?)",
        ((i, f"http://blog{i}.example.com") for i in range(1, blogs + 1)),
    )
    connection.executemany(
        "INSERT INTO posts (blog_id, title, content) VALUES (?, ?, ?)",
        ((rng.randint(1, blogs), f"Post {i}", "Content...") for i in range(blogs * POSTS_PER_BLOG)),
    )
    connection.commit()
    return DatabaseState(connection=connection, blogs=blogs)


def _database_teardown(state: DatabaseState) -> None:
    state.connection.close()


def _expect(actual: int, expected: int, what: str) -> int:
    if actual != expected:
        raise RuntimeError(f"{what}: {actual} rows, expected {expected}")
    return actual


def find_by_id(state: DatabaseState) -> int:
    """Primary-key lookup of one blog."""
    row = state.connection.execute("SELECT blog_id, url FROM blogs WHERE blog_id = ?", (1,)).fetchone()
    return _expect(0 if row is None else 1, 1, "find_by_id")


def query_top(state: DatabaseState) -> int:
    rows = state.connection.execute(
        "SELECT blog_id, url FROM blogs ORDER BY blog_id LIMIT ?", (TOP_ROWS,)
    ).fetchall()
    return _expect(len(rows), min(TOP_ROWS, state.blogs), "query_top")


def join_query(state: DatabaseState) -> int:
    """Posts of the first few blogs joined with their blog."""
    rows = state.connection.execute(
        """
        SELECT p.post_id, p.title, b.url
        FROM posts p JOIN blogs b ON b.blog_id = p.blog_id
        WHERE p.blog_id < ?
        """,
        (JOIN_BLOG_LIMIT,),
    ).fetchall()
    if any(url is None for _, _, url in rows):
        raise RuntimeError("join_query: post without a blog")
    return len(rows)


def insert(state: DatabaseState) -> int:
    cursor = state.connection.execute("INSERT INTO blogs (url) VALUES (?)", ("http://new.example.com",))
    state.connection.commit()
    return _expect(cursor.rowcount, 1, "insert")


def update(state: DatabaseState) -> int:
    cursor = state.connection.execute(
        "UPDATE blogs SET url = ? WHERE blog_id = (SELECT MIN(blog_id) FROM blogs)",
        ("http://updated.example.com",),
    )
    state.connection.commit()
    return _expect(cursor.rowcount, 1, "update")


def delete(state: DatabaseState) -> int:
    """Insert a throwaway row and delete it again, committing both."""
    cursor = state.connection.execute("INSERT INTO blogs (url) VALUES (?)", ("to_delete",))
    state.connection.commit()
    deleted = state.connection.execute("DELETE FROM blogs WHERE blog_id = ?", (cursor.lastrowid,))
    state.connection.commit()
    return _expect(deleted.rowcount, 1, "delete")


def bulk_insert(state: DatabaseState) -> int:
    """Insert a batch of orders in one transaction, then clear them."""
    ordered_at = datetime.now(timezone.utc).isoformat()
    with state.connection:
        cursor = state.connection.executemany(
            "INSERT INTO orders (blog_id, ordered_at) VALUES (?, ?)",
            ((1, ordered_at) for _ in range(BULK_ROWS)),
        )
    inserted = cursor.rowcount
    with state.connection:
        state.connection.execute("DELETE FROM orders")
    return _expect(inserted, BULK_ROWS, "bulk_insert")


def _descriptor(name: str, run, description: str) -> WorkloadDescriptor:
    return WorkloadDescriptor(
        name=f"database.{name}",
        setup=_database_setup,
        run=run,
        teardown=_database_teardown,
        parameters=ParameterSpace.of(blogs=(100, 1_000)),
        category="database",
        description=description,
    )


WORKLOADS = (
    _descriptor("find_by_id", find_by_id, "Primary-key lookup in an in-memory SQLite table"),
    _descriptor("query_top", query_top, "First 100 rows ordered by key"),
    _descriptor("join_query", join_query, "Indexed join of posts with their blogs"),
    _descriptor("insert", insert, "Single-row insert with commit"),
    _descriptor("update", update, "Single-row update with commit"),
    _descriptor("delete", delete, "Insert then delete one row, committing each"),
    _descriptor("bulk_insert", bulk_insert, "Insert 1000 rows in one transaction"),
)
