from __future__ import annotations

from typing import Iterable, List, Optional, Union

import logging

import pandas as pd

from pjs_data.core.lookup_loader import PJS_LEVELS, read_column_standards
from pjs_data.core.standardize import SAKSNR_COL

logger = logging.getLogger(__name__)

# Owner location registered abroad: type 'LAND' or number 'LAND...'
ABROAD_MARKER = "LAND"
LOKALITETTYPE_COL = "eier_lokalitettype"
LOKALITETNR_COL = "eier_lokalitetnr"

# Hensikt codes starting with '09' are quality assurance and ring trials
QUALITY_HENSIKT_PREFIX = "09"
HENSIKT_COL = "hensiktkode"

_CHOICES = {"exclude", "include"}


def _check_choice(name: str, value: str) -> str:
    v = str(value).strip().lower()
    if v not in _CHOICES:
        raise ValueError(f"{name} must be one of {sorted(_CHOICES)}, got {value!r}.")
    return v


def _startswith(s: pd.Series, prefix: str) -> pd.Series:
    return s.astype("string").str.strip().str.upper().str.startswith(prefix).fillna(False).astype(bool)


# ---------------------------------------------------------------------------
# Row exclusion
# ---------------------------------------------------------------------------

def exclude_from_pjs_data(
    df: pd.DataFrame,
    abroad: str = "exclude",
    quality: str = "exclude",
) -> pd.DataFrame:
    """
    Remove rows that usually should not be part of surveillance data.

    - abroad='exclude': samples whose owner location is registered abroad
    - quality='exclude': quality assurance samples and ring trials

    Both take 'exclude' or 'include'. A filter whose column is missing from
    the data is skipped with a warning.
    """
    abroad = _check_choice("abroad", abroad)
    quality = _check_choice("quality", quality)

    keep = pd.Series(True, index=df.index)

    if abroad == "exclude":
        cols = [c for c in (LOKALITETTYPE_COL, LOKALITETNR_COL) if c in df.columns]
        if not cols:
            logger.warning(
                "Cannot exclude samples from abroad: neither %s nor %s in data.",
                LOKALITETTYPE_COL,
                LOKALITETNR_COL,
            )
        for col in cols:
            keep &= ~_startswith(df[col], ABROAD_MARKER)

    if quality == "exclude":
        if HENSIKT_COL in df.columns:
            keep &= ~_startswith(df[HENSIKT_COL], QUALITY_HENSIKT_PREFIX)
        else:
            logger.warning("Cannot exclude quality assurance samples: %s not in data.", HENSIKT_COL)

    out = df[keep].copy()
    logger.info("Excluded %s of %s rows (abroad=%s, quality=%s)", len(df) - len(out), len(df), abroad, quality)
    return out


# ---------------------------------------------------------------------------
# Level selection
# ---------------------------------------------------------------------------

def choose_pjs_levels(
    df: pd.DataFrame,
    levels: Union[str, Iterable[str]],
    keep_col: Optional[Iterable[str]] = None,
    remove_duplicates: bool = True,
    column_standards: Optional[pd.DataFrame] = None,
) -> pd.DataFrame:
    """
    Keep the columns belonging to the given record levels.

    levels is one or more of: sak, prove, delprove, undersokelse, resultat,
    konklusjon. Columns listed in keep_col are kept regardless of level.
    With remove_duplicates, rows that became identical after dropping the
    lower levels are removed, so choosing ['sak', 'prove'] gives one row
    per sample.
    """
    wanted = [levels] if isinstance(levels, str) else list(levels)
    wanted = [str(lv).strip().lower() for lv in wanted]
    unknown = [lv for lv in wanted if lv not in PJS_LEVELS]
    if unknown or not wanted:
        raise ValueError(f"levels must be chosen from {PJS_LEVELS}, got {wanted}.")

    standards = column_standards if column_standards is not None else read_column_standards()
    level_cols = set(standards.loc[standards["level"].isin(wanted), "colname"])

    extra: List[str] = [str(c).strip().lower() for c in (keep_col or [])]
    missing = [c for c in extra if c not in df.columns]
    if missing:
        logger.warning("keep_col not found in data and ignored: %s", missing)

    selected = [
        c for c in df.columns
        if c in level_cols or c in extra or c == SAKSNR_COL
    ]
    out = df[selected]

    if remove_duplicates:
        before = len(out)
        out = out.drop_duplicates().reset_index(drop=True)
        logger.info("Levels %s: %s columns, removed %s duplicate rows", wanted, len(selected), before - len(out))
    else:
        out = out.copy()

    return out
