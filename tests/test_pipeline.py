from unittest.mock import patch

import pandas as pd
import pytest

from pjs_data.core.data_loader import load_pjs_data
from pjs_data.core.pipeline import PipelineError, PipelineParameters, run_hensikt_pipeline
from pjs_data.core.summary import build_pipeline_summary, format_summary


@pytest.fixture
def params(tmp_path):
    return PipelineParameters(
        years=[2020, 2021],
        hensikt=["0100101%", "0900101"],
        output_path=tmp_path / "out" / "PJSdata.pkl",
    )


def test_pipeline_end_to_end(pjs_engine, params, translation_table, column_standards):
    result = run_hensikt_pipeline(
        params,
        engine=pjs_engine,
        translation_table=translation_table,
        column_standards=column_standards,
    )

    assert result.row_counts == {
        "retrieved": 6,       # cases 1, 2, 3 and both samples of case 6
        "standardized": 6,
        "excluded": 4,        # case 2 is abroad, case 3 is a ring trial
        "levels": 3,          # the two examinations of case 1 collapse
        "translated": 3,
    }

    data = result.data
    assert data["saksnr"].tolist() == ["2020-01-1", "2021-01-6", "2021-01-6"]
    assert data["hensikt"].tolist() == [
        "Overvåking storfe",
        "Overvåking storfe, slakteri",
        "Overvåking storfe, slakteri",
    ]
    assert data["konkl_kjennelse"].tolist() == ["Påvist", "Ikke påvist", "Ikke påvist"]
    assert "metodekode" not in data.columns

    assert result.sakskjema["saksnr"].tolist() == ["2020-01-1", "2021-01-6"]

    saved = load_pjs_data(params.output_path)
    pd.testing.assert_frame_equal(saved, data)
    assert result.output_path == params.output_path


def test_pipeline_without_output(pjs_engine, params, translation_table, column_standards):
    params.output_path = None
    result = run_hensikt_pipeline(params, engine=pjs_engine, translation_table=translation_table, column_standards=column_standards)
    assert result.output_path is None


def test_pipeline_requires_both_views(params, translation_table):
    with patch("pjs_data.core.pipeline.timed_retrieve_pjs_data", return_value=({}, 0.0)):
        with pytest.raises(PipelineError, match="selection_v2_sak_m_res"):
            run_hensikt_pipeline(params, engine=object(), translation_table=translation_table)


def test_summary(pjs_engine, params, translation_table, column_standards):
    result = run_hensikt_pipeline(
        params,
        engine=pjs_engine,
        translation_table=translation_table,
        column_standards=column_standards,
    )

    summary = build_pipeline_summary(result)

    assert summary.n_rows == 3
    assert summary.n_cases == 2
    assert summary.cases_by_year == {2020: 1, 2021: 1}
    assert summary.hensikt_codes == ["0100101001", "0100101002"]
    assert [(s.stage, s.dropped) for s in summary.stages] == [
        ("retrieved", 0),
        ("standardized", 0),
        ("excluded", 2),
        ("levels", 1),
        ("translated", 0),
    ]

    text = format_summary(summary)
    assert "Years:   2020, 2021" in text
    assert "excluded" in text
    assert f"Saved to {params.output_path}" in text
