from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Union

import logging
import numbers

from pjs_data.config import (
    FUNN_ANALYTT_COL,
    HENSIKT_COL,
    KONKL_ANALYTT_COL,
    METODE_COL,
    PJS_RESULTS_VIEW,
    PJS_SAKSKJEMA_VIEW,
    YEAR_COL,
)

logger = logging.getLogger(__name__)

# Keys of the query dictionaries returned by the build_query_* helpers
RESULTS_QUERY_KEY = "selection_v2_sak_m_res"
SAKSKJEMA_QUERY_KEY = "selection_sakskjema"

YearInput = Union[int, str, Iterable[Union[int, str]]]
CodeInput = Union[str, Iterable[Optional[str]]]


class SqlBuilderError(Exception):
    """Raised when a selection cannot be built from the given inputs."""


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _as_list(values: Any) -> List[Any]:
    if values is None:
        return []
    if isinstance(values, (str, numbers.Integral)):
        return [values]
    try:
        return list(values)
    except TypeError as exc:
        raise SqlBuilderError(f"Expected a value or an iterable of values, got {values!r}.") from exc


def _clean_years(year: YearInput) -> List[int]:
    years: List[int] = []
    for y in _as_list(year):
        try:
            years.append(int(str(y).strip()))
        except (TypeError, ValueError) as exc:
            raise SqlBuilderError(f"Year must be an integer, got {y!r}.") from exc
    years = sorted(set(years))
    if not years:
        raise SqlBuilderError("At least one year must be given.")
    return years


def _clean_codes(values: CodeInput) -> List[str]:
    codes: List[str] = []
    for v in _as_list(values):
        if v is None:
            continue
        code = str(v).strip()
        if code and code not in codes:
            codes.append(code)
    return codes


def _quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


# ---------------------------------------------------------------------------
# WHERE-clause fragments
# ---------------------------------------------------------------------------

def build_sql_select_year(year: YearInput, varname: str = YEAR_COL) -> str:
    """
    Build a selection on year for use in a WHERE clause.

    - one year:               (aar = 2020)
    - consecutive years:      (aar >= 2019 AND aar <= 2021)
    - non-consecutive years:  (aar IN (2018, 2020))
    """
    years = _clean_years(year)

    if len(years) == 1:
        return f"({varname} = {years[0]})"

    if years[-1] - years[0] + 1 == len(years):
        return f"({varname} >= {years[0]} AND {varname} <= {years[-1]})"

    return f"({varname} IN ({', '.join(str(y) for y in years)}))"


def build_sql_select_code(values: CodeInput, varname: str) -> str:
    """
    Build a selection on one or more codes for use in a WHERE clause.

    Codes ending with '%' are treated as prefixes and selected with LIKE,
    so '0100101%' selects the code itself and every sub-code below it.
    Exact codes are selected with '=' (one) or IN (several). All parts
    are OR-ed together and the result is wrapped in parentheses.
    """
    codes = _clean_codes(values)
    if not codes:
        raise SqlBuilderError(f"At least one code must be given for {varname}.")

    prefixes = [c for c in codes if c.endswith("%")]
    exact = [c for c in codes if not c.endswith("%")]

    parts: List[str] = [f"{varname} LIKE {_quote(c)}" for c in prefixes]
    if len(exact) == 1:
        parts.append(f"{varname} = {_quote(exact[0])}")
    elif len(exact) > 1:
        parts.append(f"{varname} IN ({', '.join(_quote(c) for c in exact)})")

    return "(" + " OR ".join(parts) + ")"


# ---------------------------------------------------------------------------
# Full queries
# ---------------------------------------------------------------------------

def _queries_for(where: str) -> Dict[str, str]:
    return {
        RESULTS_QUERY_KEY: f"SELECT * FROM {PJS_RESULTS_VIEW} WHERE {where}",
        SAKSKJEMA_QUERY_KEY: f"SELECT * FROM {PJS_SAKSKJEMA_VIEW} WHERE {where}",
    }


def build_query_hensikt(year: YearInput, hensikt: CodeInput) -> Dict[str, str]:
    """
    Build the two queries for retrieving all cases with the given purpose(s)
    (hensikt) in the given year(s): one against the results view and one
    against the sakskjema view.
    """
    where = f"{build_sql_select_year(year, YEAR_COL)} AND {build_sql_select_code(hensikt, HENSIKT_COL)}"
    queries = _queries_for(where)
    logger.debug("Built hensikt queries: %s", queries)
    return queries


def build_query_one_disease(
    year: YearInput,
    analytt: CodeInput,
    hensikt: Optional[CodeInput] = None,
    metode: Optional[CodeInput] = None,
) -> Dict[str, str]:
    """
    Build the two queries for retrieving all cases concerning one disease.

    A case is selected when either the conclusion or a result refers to the
    analytt, or (if given) when the purpose or the method matches.
    """
    selections = [
        build_sql_select_code(analytt, KONKL_ANALYTT_COL),
        build_sql_select_code(analytt, FUNN_ANALYTT_COL),
    ]
    if hensikt is not None and _clean_codes(hensikt):
        selections.append(build_sql_select_code(hensikt, HENSIKT_COL))
    if metode is not None and _clean_codes(metode):
        selections.append(build_sql_select_code(metode, METODE_COL))

    where = f"{build_sql_select_year(year, YEAR_COL)} AND ({' OR '.join(selections)})"
    # v_sakskjema has no analytt columns; its cases are selected through the results view
    queries = {
        RESULTS_QUERY_KEY: f"SELECT * FROM {PJS_RESULTS_VIEW} WHERE {where}",
        SAKSKJEMA_QUERY_KEY: (
            f"SELECT * FROM {PJS_SAKSKJEMA_VIEW} s WHERE EXISTS ("
            f"SELECT 1 FROM {PJS_RESULTS_VIEW} r"
            f" WHERE r.aar = s.aar"
            f" AND r.ansvarlig_seksjon = s.ansvarlig_seksjon"
            f" AND r.innsendelsesnummer = s.innsendelsesnummer"
            f" AND {where})"
        ),
    }
    logger.debug("Built one-disease queries: %s", queries)
    return queries
