from __future__ import annotations

from typing import Dict, List, Optional

import logging
import re

import pandas as pd

from pjs_data.core.lookup_loader import DROP_LEVEL, read_column_standards

logger = logging.getLogger(__name__)

SAKSNR_COL = "saksnr"
SAKSNR_PARTS = ["aar", "ansvarlig_seksjon", "innsendelsesnr"]

_NON_NAME_CHARS = re.compile(r"[\s\-\.]+")


def _clean_colname(name: object) -> str:
    return _NON_NAME_CHARS.sub("_", str(name).strip().lower()).strip("_")


def _clean_text(s: pd.Series) -> pd.Series:
    """Trim a text column and turn empty strings into missing values."""
    out = s.astype("string").str.strip()
    return out.replace("", pd.NA)


def _is_text(s: pd.Series) -> bool:
    return pd.api.types.is_object_dtype(s) or pd.api.types.is_string_dtype(s)


def _standards(column_standards: Optional[pd.DataFrame]) -> pd.DataFrame:
    return column_standards if column_standards is not None else read_column_standards()


# ---------------------------------------------------------------------------
# Column names
# ---------------------------------------------------------------------------

def standardize_colnames(
    df: pd.DataFrame,
    column_standards: Optional[pd.DataFrame] = None,
) -> pd.DataFrame:
    """
    Rename PJS columns to the standard column names.

    Names are trimmed and lower-cased, whitespace, dashes and dots become
    underscores, and names listed in the column standards are translated
    to their standard name. Other columns keep their cleaned name.
    """
    standards = _standards(column_standards)
    mapping: Dict[str, str] = dict(zip(standards["colname_db"], standards["colname"]))

    new_names: List[str] = []
    for c in df.columns:
        cleaned = _clean_colname(c)
        new_names.append(mapping.get(cleaned, cleaned))

    out = df.copy()
    out.columns = new_names

    dupes = out.columns.duplicated()
    if dupes.any():
        logger.warning(
            "Standardised column names are not unique, keeping the first of each: %s",
            sorted(set(out.columns[dupes])),
        )
        out = out.loc[:, ~dupes]
    return out


# ---------------------------------------------------------------------------
# Full standardisation
# ---------------------------------------------------------------------------

def standardize_pjs_data(
    df: pd.DataFrame,
    column_standards: Optional[pd.DataFrame] = None,
) -> pd.DataFrame:
    """
    Standardise a dataset retrieved from one of the PJS views.

    Steps:
      - rename columns to standard names (standardize_colnames)
      - coerce types given by the column standards:
          date      -> datetime64
          integer   -> nullable Int64
          character -> string, trimmed, '' -> missing
      - trim any other text column
      - add 'saksnr' (aar-ansvarlig_seksjon-innsendelsesnr) as first column
      - drop columns marked as redundant (level 'drop')

    The input frame is left unchanged.
    """
    standards = _standards(column_standards)
    out = standardize_colnames(df, standards)

    types: Dict[str, str] = dict(zip(standards["colname"], standards["data_type"]))
    for col in out.columns:
        data_type = types.get(col)
        if data_type == "date":
            out[col] = pd.to_datetime(out[col], errors="coerce")
        elif data_type == "integer":
            out[col] = pd.to_numeric(out[col], errors="coerce").astype("Int64")
        elif data_type == "character" or _is_text(out[col]):
            out[col] = _clean_text(out[col])

    if SAKSNR_COL not in out.columns and all(c in out.columns for c in SAKSNR_PARTS):
        saksnr = (
            out["aar"].astype("string")
            + "-"
            + out["ansvarlig_seksjon"].astype("string")
            + "-"
            + out["innsendelsesnr"].astype("string")
        )
        out.insert(0, SAKSNR_COL, saksnr)

    drop_cols = [c for c in standards.loc[standards["level"] == DROP_LEVEL, "colname"] if c in out.columns]
    if drop_cols:
        out = out.drop(columns=drop_cols)

    logger.info("Standardised %s rows x %s columns", len(out), len(out.columns))
    return out
