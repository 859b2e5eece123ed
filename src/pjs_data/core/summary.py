from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

from pjs_data.core.pipeline import STAGES, PipelineResult
from pjs_data.core.standardize import SAKSNR_COL


@dataclass
class StageCount:
    """
    Row count after one pipeline stage and how many rows it removed.
    """
    stage: str
    rows: int
    dropped: int


@dataclass
class PipelineSummary:
    """
    Key figures of a pipeline run, for logging and for a quick check of the
    retrieved data before it is used further.
    """
    years: List[int]
    hensikt: List[str]
    levels: List[str]

    stages: List[StageCount]

    n_rows: int
    n_columns: int
    n_cases: Optional[int]
    cases_by_year: Dict[int, int]
    hensikt_codes: List[str]

    output_path: Optional[str]


def _stage_counts(row_counts: Dict[str, int]) -> List[StageCount]:
    stages: List[StageCount] = []
    prev: Optional[int] = None
    for name in STAGES:
        if name not in row_counts:
            continue
        rows = int(row_counts[name])
        stages.append(StageCount(stage=name, rows=rows, dropped=0 if prev is None else prev - rows))
        prev = rows
    return stages


def build_pipeline_summary(result: PipelineResult) -> PipelineSummary:
    data = result.data

    n_cases: Optional[int] = None
    cases_by_year: Dict[int, int] = {}
    if SAKSNR_COL in data.columns:
        n_cases = int(data[SAKSNR_COL].nunique(dropna=True))
        if "aar" in data.columns:
            per_year = data.dropna(subset=["aar"]).groupby("aar")[SAKSNR_COL].nunique()
            cases_by_year = {int(y): int(n) for y, n in per_year.items()}

    hensikt_codes: List[str] = []
    if "hensiktkode" in data.columns:
        hensikt_codes = sorted(str(c) for c in data["hensiktkode"].dropna().unique())

    return PipelineSummary(
        years=sorted(int(y) for y in result.params.years),
        hensikt=list(result.params.hensikt),
        levels=list(result.params.levels),
        stages=_stage_counts(result.row_counts),
        n_rows=len(data),
        n_columns=len(data.columns),
        n_cases=n_cases,
        cases_by_year=cases_by_year,
        hensikt_codes=hensikt_codes,
        output_path=str(result.output_path) if result.output_path is not None else None,
    )


def format_summary(summary: PipelineSummary) -> str:
    lines = [
        f"Years:   {', '.join(str(y) for y in summary.years)}",
        f"Hensikt: {', '.join(summary.hensikt)}",
        f"Levels:  {', '.join(summary.levels)}",
        "",
    ]
    for s in summary.stages:
        lines.append(f"  {s.stage:<13} {s.rows:>8} rows  (-{s.dropped})" if s.dropped else f"  {s.stage:<13} {s.rows:>8} rows")
    lines.append("")
    lines.append(f"Result: {summary.n_rows} rows x {summary.n_columns} columns")
    if summary.n_cases is not None:
        lines.append(f"Cases:  {summary.n_cases}")
        for year, n in sorted(summary.cases_by_year.items()):
            lines.append(f"  {year}: {n}")
    if summary.hensikt_codes:
        lines.append(f"Hensikt codes in data: {', '.join(summary.hensikt_codes)}")
    if summary.output_path:
        lines.append(f"Saved to {summary.output_path}")
    return "\n".join(lines)

