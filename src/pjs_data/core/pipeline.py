from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

import logging

import pandas as pd
from sqlalchemy.engine import Engine

from pjs_data.core.data_loader import save_pjs_data, timed_retrieve_pjs_data
from pjs_data.core.filters import choose_pjs_levels, exclude_from_pjs_data
from pjs_data.core.lookup_loader import read_column_standards, read_pjs_codes_2_text
from pjs_data.core.sql_builder import (
    RESULTS_QUERY_KEY,
    SAKSKJEMA_QUERY_KEY,
    build_query_hensikt,
)
from pjs_data.core.standardize import standardize_pjs_data
from pjs_data.core.translate import add_pjs_code_description

logger = logging.getLogger(__name__)

DEFAULT_LEVELS = ["sak", "prove", "konklusjon"]
DEFAULT_CODE_COLNAMES = [
    "hensiktkode",
    "konkl_typekode",
    "konkl_kjennelsekode",
    "konkl_analyttkode",
]

# Stage names used as keys in PipelineResult.row_counts, in order
STAGES = ["retrieved", "standardized", "excluded", "levels", "translated"]


class PipelineError(Exception):
    """Raised when the retrieval/standardisation pipeline cannot complete."""


@dataclass
class PipelineParameters:
    """
    Parameters for retrieving and standardising PJS data for one or more
    surveillance programmes.

    hensikt codes ending with '%' select every sub-code, e.g. '0100101%'.
    """
    years: List[int]
    hensikt: List[str]
    levels: List[str] = field(default_factory=lambda: list(DEFAULT_LEVELS))
    keep_col: List[str] = field(default_factory=list)
    code_colname: List[str] = field(default_factory=lambda: list(DEFAULT_CODE_COLNAMES))
    abroad: str = "exclude"
    quality: str = "exclude"
    output_path: Optional[Union[str, Path]] = None


@dataclass
class PipelineResult:
    params: PipelineParameters
    queries: Dict[str, str]

    # As retrieved from the two views
    raw: pd.DataFrame
    raw_sakskjema: pd.DataFrame

    # Standardised and filtered sakskjema (one row per case)
    sakskjema: pd.DataFrame

    # Final dataset: chosen levels with code descriptions
    data: pd.DataFrame

    row_counts: Dict[str, int]
    elapsed_seconds: float
    output_path: Optional[Path] = None


def run_hensikt_pipeline(
    params: PipelineParameters,
    engine: Optional[Engine] = None,
    translation_table: Optional[pd.DataFrame] = None,
    column_standards: Optional[pd.DataFrame] = None,
) -> PipelineResult:
    """
    Retrieve PJS data for the given years and purposes and prepare it for
    analysis:

      1. build the queries for v2_sak_m_res and v_sakskjema
      2. retrieve both over one short-lived connection
      3. standardise column names and types
      4. exclude samples from abroad and quality assurance
      5. keep the chosen record levels and remove duplicate rows
      6. add descriptive text for the code columns
      7. save the result, when an output path is given
    """
    logger.info("Running hensikt pipeline with params=%s", params)

    queries = build_query_hensikt(year=params.years, hensikt=params.hensikt)
    retrieved, elapsed = timed_retrieve_pjs_data(queries, engine=engine)

    missing = [k for k in (RESULTS_QUERY_KEY, SAKSKJEMA_QUERY_KEY) if k not in retrieved]
    if missing:
        raise PipelineError(f"Retrieval did not return results for {missing}.")

    raw = retrieved[RESULTS_QUERY_KEY]
    raw_sakskjema = retrieved[SAKSKJEMA_QUERY_KEY]
    row_counts: Dict[str, int] = {"retrieved": len(raw)}

    standards = column_standards if column_standards is not None else read_column_standards()

    data = standardize_pjs_data(raw, standards)
    sakskjema = standardize_pjs_data(raw_sakskjema, standards)
    row_counts["standardized"] = len(data)

    data = exclude_from_pjs_data(data, abroad=params.abroad, quality=params.quality)
    sakskjema = exclude_from_pjs_data(sakskjema, abroad=params.abroad, quality=params.quality)
    row_counts["excluded"] = len(data)

    data = choose_pjs_levels(
        data,
        levels=params.levels,
        keep_col=params.keep_col,
        remove_duplicates=True,
        column_standards=standards,
    )
    row_counts["levels"] = len(data)

    code_cols = [c for c in params.code_colname if c in data.columns]
    skipped = [c for c in params.code_colname if c not in data.columns]
    if skipped:
        logger.warning("Code columns not present after level selection, not translated: %s", skipped)

    if code_cols:
        table = translation_table if translation_table is not None else read_pjs_codes_2_text()
        data = add_pjs_code_description(
            data,
            translation_table=table,
            code_colname=code_cols,
            pjs_variable_type="auto",
            new_column="auto",
            position="right",
            overwrite=True,
        )
    row_counts["translated"] = len(data)

    output_path: Optional[Path] = None
    if params.output_path is not None:
        output_path = save_pjs_data(data, params.output_path)

    logger.info("Pipeline finished: %s", row_counts)

    return PipelineResult(
        params=params,
        queries=queries,
        raw=raw,
        raw_sakskjema=raw_sakskjema,
        sakskjema=sakskjema,
        data=data,
        row_counts=row_counts,
        elapsed_seconds=elapsed,
        output_path=output_path,
    )
