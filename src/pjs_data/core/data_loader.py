from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

import pandas as pd
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from pjs_data.config import PJS_DATABASE_URL

logger = logging.getLogger(__name__)


class DataLoaderError(Exception):
    """Raised when PJS queries fail or the connection cannot be set up."""


def build_engine(url: Optional[str] = None) -> Engine:
    """
    Build a SQLAlchemy engine for the PJS database.

    The URL (including credentials) comes from the caller or from the
    PJS_DATABASE_URL environment variable. Connections are not pooled
    between calls to retrieve_pjs_data; each retrieval opens and closes
    its own connection.
    """
    db_url = (url or PJS_DATABASE_URL or "").strip()
    if not db_url:
        raise DataLoaderError(
            "Missing PJS database URL. Set PJS_DATABASE_URL or pass url explicitly."
        )

    try:
        return create_engine(db_url)
    except (SQLAlchemyError, ImportError, ValueError) as exc:
        raise DataLoaderError(f"Could not create engine for PJS database: {exc}") from exc


def retrieve_pjs_data(
    queries: Dict[str, str],
    engine: Optional[Engine] = None,
) -> Dict[str, pd.DataFrame]:
    """
    Run each query against PJS over a single connection and return the
    results keyed like the input.

    The connection is opened, used for all queries and closed before
    returning, also when one of the queries fails.
    """
    if not queries:
        raise DataLoaderError("No queries given.")

    eng = engine if engine is not None else build_engine()

    results: Dict[str, pd.DataFrame] = {}
    try:
        with eng.connect() as conn:
            for key, sql in queries.items():
                t0 = time.perf_counter()
                try:
                    df = pd.read_sql_query(text(sql), conn)
                except (SQLAlchemyError, pd.errors.DatabaseError) as exc:
                    # pandas >= 2.2 re-raises driver errors as its own DatabaseError
                    raise DataLoaderError(f"Query '{key}' failed: {exc}") from exc
                logger.info(
                    "Retrieved %s rows for %s in %.2fs", len(df), key, time.perf_counter() - t0
                )
                results[key] = df
    except SQLAlchemyError as exc:
        raise DataLoaderError(f"Could not connect to PJS database: {exc}") from exc

    return results


def timed_retrieve_pjs_data(
    queries: Dict[str, str],
    engine: Optional[Engine] = None,
) -> Tuple[Dict[str, pd.DataFrame], float]:
    """
    Convenience helper for timing logs.
    """
    t0 = time.perf_counter()
    results = retrieve_pjs_data(queries, engine=engine)
    return results, (time.perf_counter() - t0)


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

def save_pjs_data(df: pd.DataFrame, path: Union[str, Path]) -> Path:
    """Pickle a dataset to path, creating parent directories."""
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    df.to_pickle(out)
    logger.info("Saved %s rows to %s", len(df), out)
    return out


def load_pjs_data(path: Union[str, Path]) -> pd.DataFrame:
    src = Path(path)
    if not src.exists():
        raise FileNotFoundError(f"No saved PJS dataset at {src}.")
    df = pd.read_pickle(src)
    if not isinstance(df, pd.DataFrame):
        raise DataLoaderError(f"{src} does not contain a DataFrame (got {type(df)}).")
    return df
