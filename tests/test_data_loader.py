import pandas as pd
import pytest
from sqlalchemy import event

from pjs_data.core import data_loader
from pjs_data.core.data_loader import (
    DataLoaderError,
    build_engine,
    load_pjs_data,
    retrieve_pjs_data,
    save_pjs_data,
)
from pjs_data.core.sql_builder import (
    RESULTS_QUERY_KEY,
    SAKSKJEMA_QUERY_KEY,
    build_query_hensikt,
    build_query_one_disease,
)


class TestRetrieve:
    """Retrieval against a SQLite stand-in for PJS."""

    def test_retrieve_both_views(self, pjs_engine):
        queries = build_query_hensikt(year=[2020, 2021], hensikt=["0100101%"])

        results = retrieve_pjs_data(queries, engine=pjs_engine)

        assert set(results) == {RESULTS_QUERY_KEY, SAKSKJEMA_QUERY_KEY}
        # rows 1-3 (2020) and the two samples of case 6 (2021)
        assert len(results[RESULTS_QUERY_KEY]) == 5
        assert sorted(results[SAKSKJEMA_QUERY_KEY]["INNSENDELSESNUMMER"]) == [1, 2, 6]

    def test_failing_query_names_the_query(self, pjs_engine):
        with pytest.raises(DataLoaderError, match="broken"):
            retrieve_pjs_data({"broken": "SELECT * FROM no_such_view"}, engine=pjs_engine)

    def test_no_queries_raise(self, pjs_engine):
        with pytest.raises(DataLoaderError):
            retrieve_pjs_data({}, engine=pjs_engine)


def test_build_engine_requires_url(monkeypatch):
    monkeypatch.setattr(data_loader, "PJS_DATABASE_URL", "")
    with pytest.raises(DataLoaderError, match="PJS_DATABASE_URL"):
        build_engine()


def test_build_engine_from_url(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'x.db'}")
    assert engine.dialect.name == "sqlite"
    engine.dispose()


def test_save_and_load(tmp_path):
    df = pd.DataFrame({"saksnr": ["2020-01-1"], "aar": pd.array([2020], dtype="Int64")})
    path = tmp_path / "nested" / "PJSdata.pkl"

    assert save_pjs_data(df, path) == path
    pd.testing.assert_frame_equal(load_pjs_data(path), df)


def test_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_pjs_data(tmp_path / "missing.pkl")


class TestConnectionLifetime:
    """The connection is returned to the pool as soon as retrieval ends."""

    @staticmethod
    def _track(engine):
        counts = {"checkout": 0, "checkin": 0}

        def on_checkout(dbapi_conn, record, proxy):
            counts["checkout"] += 1

        def on_checkin(dbapi_conn, record):
            counts["checkin"] += 1

        event.listen(engine, "checkout", on_checkout)
        event.listen(engine, "checkin", on_checkin)
        return counts

    def test_one_connection_for_all_queries(self, pjs_engine):
        counts = self._track(pjs_engine)

        retrieve_pjs_data(build_query_hensikt(year=2020, hensikt="0100101%"), engine=pjs_engine)

        assert counts == {"checkout": 1, "checkin": 1}

    def test_connection_closed_when_query_fails(self, pjs_engine):
        counts = self._track(pjs_engine)

        with pytest.raises(DataLoaderError, match="'b' failed"):
            retrieve_pjs_data({"a": "SELECT 1", "b": "SELECT * FROM nope"}, engine=pjs_engine)

        assert counts == {"checkout": 1, "checkin": 1}


class TestOneDisease:
    """Queries for one disease against the SQLite stand-in."""

    def test_by_analytt(self, pjs_engine):
        queries = build_query_one_disease(year=2020, analytt="01220104%")

        results = retrieve_pjs_data(queries, engine=pjs_engine)

        assert len(results[RESULTS_QUERY_KEY]) == 3
        assert sorted(results[SAKSKJEMA_QUERY_KEY]["INNSENDELSESNUMMER"]) == [1, 2]

    def test_by_metode(self, pjs_engine):
        queries = build_query_one_disease(year=[2020, 2021], analytt="99999999", metode="070231")

        results = retrieve_pjs_data(queries, engine=pjs_engine)

        assert results[RESULTS_QUERY_KEY]["UNDERSOKELSESNUMMER"].tolist() == [2]
        assert results[SAKSKJEMA_QUERY_KEY]["INNSENDELSESNUMMER"].tolist() == [1]
