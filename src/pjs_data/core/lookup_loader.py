from __future__ import annotations

from pathlib import Path
from typing import Optional, List, Union

import logging
import os
import tempfile

import pandas as pd
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from pjs_data.config import (
    COLUMN_STANDARDS_FILE,
    COLUMN_STANDARDS_URL,
    LOOKUP_DIR,
    PJS_CODES_2_TEXT_FILE,
    PJS_CODES_2_TEXT_URL,
    RESOURCES_DIR,
)

logger = logging.getLogger(__name__)

# Record levels in PJS, from case down to conclusion. Columns at level "drop"
# are removed during standardisation.
PJS_LEVELS = ["sak", "prove", "delprove", "undersokelse", "resultat", "konklusjon"]
DROP_LEVEL = "drop"

DATA_TYPES = {"character", "integer", "date"}

# In-memory caches
_COLUMN_STANDARDS_CACHE: Optional[pd.DataFrame] = None
_CODES_2_TEXT_CACHE: Optional[pd.DataFrame] = None


class LookupLoaderError(Exception):
    """Raised when a lookup table is malformed or cannot be fetched."""


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _find_column_standards() -> Path:
    """
    Locate the column standards table.

    A copy in LOOKUP_DIR (e.g. downloaded with copy_column_standards) takes
    precedence; otherwise the table bundled with the package is used.
    """
    local = LOOKUP_DIR / COLUMN_STANDARDS_FILE
    if local.exists():
        return local

    bundled = RESOURCES_DIR / COLUMN_STANDARDS_FILE
    logger.debug("No %s in %s, using bundled %s.", COLUMN_STANDARDS_FILE, LOOKUP_DIR, bundled)
    return bundled


def _require_columns(df: pd.DataFrame, required: List[str], what: str) -> None:
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise LookupLoaderError(
            f"{what} does not contain the expected columns {required}. Missing: {missing}."
        )


def _build_retry_session() -> requests.Session:
    """
    Build a requests Session with conservative retries for lookup downloads.

    The lookup tables are served from a shared file or web server that is
    occasionally slow or briefly unavailable; a download is retried on
    connection errors and 429/5xx responses before copy_lookup_file gives up.
    """
    session = requests.Session()

    retry = Retry(
        total=5,
        connect=5,
        read=5,
        status=5,
        backoff_factor=0.6,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset({"GET"}),
        raise_on_status=False,
    )

    adapter = HTTPAdapter(max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)

    return session


_SESSION: Optional[requests.Session] = None


def _get_session() -> requests.Session:
    global _SESSION
    if _SESSION is None:
        _SESSION = _build_retry_session()
    return _SESSION


# ---------------------------------------------------------------------------
# Column standards
# ---------------------------------------------------------------------------

def read_column_standards(
    path: Optional[Union[str, Path]] = None,
    refresh: bool = False,
) -> pd.DataFrame:
    """
    Load the table used to standardise PJS column names.

    Expected columns:
      - colname_db   (column name as delivered by the PJS views)
      - colname      (standard column name)
      - level        (sak, prove, delprove, undersokelse, resultat,
                      konklusjon, or 'drop' for redundant columns)
      - data_type    (character, integer, date)

    Names are trimmed and lower-cased. When a database name occurs more
    than once, the first row wins.
    """
    global _COLUMN_STANDARDS_CACHE
    if path is None and _COLUMN_STANDARDS_CACHE is not None and not refresh:
        return _COLUMN_STANDARDS_CACHE

    src = Path(path) if path is not None else _find_column_standards()
    if not src.exists():
        raise FileNotFoundError(f"Column standards not found at {src}.")

    logger.info("Loading column standards: %s", src)
    df = pd.read_csv(src, dtype=str, keep_default_na=False)
    df.columns = [str(c).strip().lower() for c in df.columns]
    _require_columns(df, ["colname_db", "colname", "level", "data_type"], "Column standards")

    out = pd.DataFrame()
    for col in ["colname_db", "colname", "level", "data_type"]:
        out[col] = df[col].astype(str).str.strip().str.lower()

    out = out[(out["colname_db"] != "") & (out["colname"] != "")]

    bad_levels = sorted(set(out["level"]) - set(PJS_LEVELS) - {DROP_LEVEL})
    if bad_levels:
        raise LookupLoaderError(f"Column standards contain unknown levels: {bad_levels}.")
    bad_types = sorted(set(out["data_type"]) - DATA_TYPES)
    if bad_types:
        raise LookupLoaderError(f"Column standards contain unknown data types: {bad_types}.")

    out = out.drop_duplicates(subset="colname_db", keep="first").reset_index(drop=True)

    if path is None:
        _COLUMN_STANDARDS_CACHE = out
    return out


# ---------------------------------------------------------------------------
# Codes -> text
# ---------------------------------------------------------------------------

def read_pjs_codes_2_text(
    path: Optional[Union[str, Path]] = None,
    refresh: bool = False,
) -> pd.DataFrame:
    """
    Load the flat table used to translate PJS codes into descriptive text.

    Expected columns:
      - type         (code type, e.g. 'hensikt', 'metode', 'analytt')
      - kode         (the code as stored in PJS)
      - navn         (descriptive text)
      - utgatt_dato  (optional; date the code was retired)

    Place the file here (or download it with copy_pjs_codes_2_text):
      data/lookup/PJS_codes_2_text.csv
    """
    global _CODES_2_TEXT_CACHE
    if path is None and _CODES_2_TEXT_CACHE is not None and not refresh:
        return _CODES_2_TEXT_CACHE

    src = Path(path) if path is not None else LOOKUP_DIR / PJS_CODES_2_TEXT_FILE
    if not src.exists():
        raise FileNotFoundError(
            f"No code translation table found. Expected {src}. "
            "Download it with copy_pjs_codes_2_text() or set PJS_LOOKUP_DIR."
        )

    logger.info("Loading PJS code translation table: %s", src)
    sep = "\t" if src.suffix.lower() in {".txt", ".tsv"} else ","
    df = pd.read_csv(src, sep=sep, dtype=str, keep_default_na=False)
    df.columns = [str(c).strip().lower() for c in df.columns]
    _require_columns(df, ["type", "kode", "navn"], "PJS code translation table")

    out = pd.DataFrame()
    out["type"] = df["type"].astype(str).str.strip().str.lower()
    out["kode"] = df["kode"].astype(str).str.strip()
    out["navn"] = df["navn"].astype(str).str.strip()
    if "utgatt_dato" in df.columns:
        out["utgatt_dato"] = pd.to_datetime(df["utgatt_dato"].astype(str).str.strip(), errors="coerce")
    else:
        out["utgatt_dato"] = pd.NaT

    out = out[(out["type"] != "") & (out["kode"] != "")].reset_index(drop=True)
    logger.info("Code translation table has %s rows, types: %s", len(out), sorted(out["type"].unique()))

    if path is None:
        _CODES_2_TEXT_CACHE = out
    return out


# ---------------------------------------------------------------------------
# Downloads
# ---------------------------------------------------------------------------

def copy_lookup_file(
    url: str,
    destination: Union[str, Path],
    timeout_seconds: int = 60,
) -> Path:
    """
    Download a lookup table to destination.

    The file is written to a temporary file in the same directory first and
    then moved into place, so a failed download never leaves a truncated
    table behind.
    """
    if not url:
        raise LookupLoaderError("No URL given for lookup table download.")

    dest = Path(destination)
    dest.parent.mkdir(parents=True, exist_ok=True)

    try:
        resp = _get_session().get(url, timeout=timeout_seconds)
    except requests.RequestException as exc:
        raise LookupLoaderError(f"HTTP error while downloading {url}: {exc}") from exc

    if resp.status_code != 200:
        preview = (resp.text or "")[:200]
        raise LookupLoaderError(
            f"Download of {url} failed (status={resp.status_code}). Preview: {preview}"
        )

    fd, tmp_name = tempfile.mkstemp(dir=dest.parent, prefix=f".{dest.name}.", suffix=".part")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(resp.content)
        os.replace(tmp_name, dest)
    except OSError:
        if os.path.exists(tmp_name):
            os.remove(tmp_name)
        raise

    logger.info("Copied %s to %s (%s bytes)", url, dest, len(resp.content))
    return dest


def copy_pjs_codes_2_text(timeout_seconds: int = 60) -> Path:
    if not PJS_CODES_2_TEXT_URL:
        raise LookupLoaderError("PJS_CODES_2_TEXT_URL is not set.")
    dest = copy_lookup_file(PJS_CODES_2_TEXT_URL, LOOKUP_DIR / PJS_CODES_2_TEXT_FILE, timeout_seconds)
    read_pjs_codes_2_text(refresh=True)
    return dest


def copy_column_standards(timeout_seconds: int = 60) -> Path:
    if not COLUMN_STANDARDS_URL:
        raise LookupLoaderError("PJS_COLUMN_STANDARDS_URL is not set.")
    dest = copy_lookup_file(COLUMN_STANDARDS_URL, LOOKUP_DIR / COLUMN_STANDARDS_FILE, timeout_seconds)
    read_column_standards(refresh=True)
    return dest
