from __future__ import annotations

import re
from contextlib import contextmanager
from typing import Iterator

import pandas as pd
from sqlalchemy import Engine, create_engine, inspect, text


_TABLE_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")


# ─────────────────────────────────────────
# Engine factory
# ─────────────────────────────────────────

def is_database_url(source: str) -> bool:
    return "://" in source and not source.lower().startswith("file://")


@contextmanager
def library_engine(url: str) -> Iterator[Engine]:
    """
    Short-lived engine for reading the reference library.

    The library is read once per process, so no pool is kept around;
    the engine is disposed as soon as the block exits.
    """
    engine = create_engine(url, pool_pre_ping=True)
    try:
        yield engine
    finally:
        engine.dispose()


# ─────────────────────────────────────────
# Read-only table access
# ─────────────────────────────────────────

def read_table(url: str, table: str) -> pd.DataFrame:
    """
    Read a whole table into a DataFrame with every column as text.

    Fail-closed on table names that are not plain identifiers, since the
    name is inlined into the statement.
    """
    if not _TABLE_NAME_RE.match(table):
        raise ValueError(f"invalid table name: {table!r}")

    with library_engine(url) as engine:
        schema, _, name = table.rpartition(".")
        if not inspect(engine).has_table(name, schema=schema or None):
            raise LookupError(f"table not found: {table}")

        with engine.connect() as conn:
            df = pd.read_sql(text(f"SELECT * FROM {table}"), conn)

    return df.astype(object).where(df.notna(), None)
