from __future__ import annotations

from typing import Dict, List, Sequence, Union

import logging

import pandas as pd

logger = logging.getLogger(__name__)

# Standard column name -> code type in PJS_codes_2_text
PJS_VARIABLE_TYPES: Dict[str, str] = {
    "hensiktkode": "hensikt",
    "utbrudd_id": "utbrudd",
    "ansvarlig_seksjon": "seksjon",
    "artkode": "art",
    "driftsformkode": "driftsform",
    "provetypekode": "provetype",
    "provematerialekode": "provemateriale",
    "metodekode": "metode",
    "analyttkode_funn": "analytt",
    "res_kjennelsekode": "kjennelse",
    "konkl_typekode": "konkl_type",
    "konkl_kjennelsekode": "kjennelse",
    "konkl_analyttkode": "analytt",
}

POSITIONS = {"right", "left", "first", "last"}

StrOrList = Union[str, Sequence[str]]


def _as_list(value: StrOrList) -> List[str]:
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


def auto_description_colname(code_colname: str) -> str:
    """
    Name of the text column for a code column:
    'hensiktkode' -> 'hensikt', 'analyttkode_funn' -> 'analytt_funn',
    'ansvarlig_seksjon' -> 'ansvarlig_seksjon_navn'.
    """
    if "kode" in code_colname:
        return code_colname.replace("kode", "", 1)
    return f"{code_colname}_navn"


# Text column name -> code column name, for backward translation
_CODE_COL_BY_TEXT_COL: Dict[str, str] = {auto_description_colname(c): c for c in PJS_VARIABLE_TYPES}


def _auto_code_colname(text_colname: str) -> str:
    if text_colname in _CODE_COL_BY_TEXT_COL:
        return _CODE_COL_BY_TEXT_COL[text_colname]
    if text_colname.endswith("_navn"):
        return text_colname[: -len("_navn")]
    return f"{text_colname}kode"


def _resolve_types(columns: List[str], pjs_variable_type: StrOrList, backward: bool) -> List[str]:
    if isinstance(pjs_variable_type, str) and pjs_variable_type == "auto":
        types: List[str] = []
        for col in columns:
            code_col = _auto_code_colname(col) if backward else col
            if code_col not in PJS_VARIABLE_TYPES:
                raise ValueError(
                    f"Cannot determine the code type for '{col}'. "
                    f"Give pjs_variable_type explicitly (known columns: {sorted(PJS_VARIABLE_TYPES)})."
                )
            types.append(PJS_VARIABLE_TYPES[code_col])
        return types

    types = _as_list(pjs_variable_type)
    if len(types) == 1 and len(columns) > 1:
        types = types * len(columns)
    if len(types) != len(columns):
        raise ValueError(
            f"pjs_variable_type must have one entry per column ({len(columns)}), got {len(types)}."
        )
    return [t.strip().lower() for t in types]


def _resolve_new_columns(columns: List[str], new_column: StrOrList, backward: bool) -> List[str]:
    if isinstance(new_column, str) and new_column == "auto":
        return [_auto_code_colname(c) if backward else auto_description_colname(c) for c in columns]

    names = _as_list(new_column)
    if len(names) != len(columns):
        raise ValueError(f"new_column must have one entry per column ({len(columns)}), got {len(names)}.")
    return names


def _translation_map(translation_table: pd.DataFrame, code_type: str, backward: bool) -> Dict[str, str]:
    """
    Build code -> text (or text -> code) for one code type.

    A code can occur more than once when it has been retired and reused;
    codes without utgatt_dato win over retired ones.
    """
    key, value = ("navn", "kode") if backward else ("kode", "navn")

    table = translation_table[translation_table["type"] == code_type]
    if table.empty:
        logger.warning("No codes of type '%s' in the translation table.", code_type)
        return {}

    if "utgatt_dato" in table.columns:
        table = table.assign(_retired=table["utgatt_dato"].notna()).sort_values("_retired", kind="stable")

    table = table.drop_duplicates(subset=key, keep="first")
    return dict(zip(table[key].astype(str).str.strip(), table[value].astype(str).str.strip()))


def _insert_at(out: pd.DataFrame, code_col: str, position: str) -> int:
    if position == "first":
        return 0
    if position == "last":
        return len(out.columns)
    idx = out.columns.get_loc(code_col)
    return idx + 1 if position == "right" else idx


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def add_pjs_code_description(
    data: pd.DataFrame,
    translation_table: pd.DataFrame,
    code_colname: StrOrList,
    pjs_variable_type: StrOrList = "auto",
    new_column: StrOrList = "auto",
    position: str = "right",
    overwrite: bool = False,
    backward: bool = False,
) -> pd.DataFrame:
    """
    Add descriptive text for one or more PJS code columns.

    For each column in code_colname, the codes are looked up in the
    translation table (see read_pjs_codes_2_text) among the codes of the
    matching type, and the text is added as a new column.

    Parameters:
      - pjs_variable_type: 'auto' resolves the type from the column name
        (PJS_VARIABLE_TYPES); otherwise one type, or one per column.
      - new_column: 'auto' derives the name ('hensiktkode' -> 'hensikt');
        otherwise one name per column.
      - position: where to put the new column relative to the code column:
        'right', 'left', 'first' or 'last'.
      - overwrite: replace an existing column with the same name.
      - backward: translate text back to codes instead.

    Rows and their order are unchanged. Codes without a translation get a
    missing value.
    """
    if position not in POSITIONS:
        raise ValueError(f"position must be one of {sorted(POSITIONS)}, got {position!r}.")

    for col in ["type", "kode", "navn"]:
        if col not in translation_table.columns:
            raise ValueError(f"Translation table is missing column '{col}'.")

    columns = _as_list(code_colname)
    if not columns:
        raise ValueError("code_colname must name at least one column.")
    missing = [c for c in columns if c not in data.columns]
    if missing:
        raise ValueError(f"Columns not found in data: {missing}.")

    types = _resolve_types(columns, pjs_variable_type, backward)
    new_names = _resolve_new_columns(columns, new_column, backward)

    out = data.copy()
    for code_col, code_type, new_col in zip(columns, types, new_names):
        if new_col in out.columns:
            if not overwrite:
                raise ValueError(f"Column '{new_col}' already exists. Use overwrite=True to replace it.")
            out = out.drop(columns=[new_col])

        mapping = _translation_map(translation_table, code_type, backward)
        keys = out[code_col].astype("string").str.strip()
        translated = keys.map(mapping).astype("string")

        untranslated = keys.notna() & translated.isna()
        n_untranslated = int(untranslated.sum())
        if n_untranslated:
            logger.warning(
                "%s values in '%s' have no translation of type '%s' (e.g. %s)",
                n_untranslated,
                code_col,
                code_type,
                sorted(keys[untranslated].unique())[:5],
            )

        out.insert(_insert_at(out, code_col, position), new_col, translated)

    return out
