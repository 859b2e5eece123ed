import pandas as pd
import pytest
from sqlalchemy import create_engine

from pjs_data.config import COLUMN_STANDARDS_FILE, RESOURCES_DIR
from pjs_data.core import lookup_loader


RESULTS_ROWS = [
    # aar, seksjon, innsnr, mottatt, hensikt, lok.type, lok.nr, provenr, art, undnr, metode, konklnr, type, kjennelse, analytt
    (2020, "01", 1, "2020-03-02", "0100101001", "PROD", "0301-0001", 1, "05", 1, "070070", 1, "99", "01", "01220104"),
    (2020, "01", 1, "2020-03-02", "0100101001", "PROD", "0301-0001", 1, "05", 2, "070231", 1, "99", "01", "01220104"),
    (2020, "01", 2, "2020-04-15", "0100101001", "LAND", "LAND-SE", 1, "05", 1, "070070", 1, "99", "02", "01220104"),
    (2021, "01", 3, "2021-01-10", "0900101", "PROD", "0301-0002", 1, "05", 1, "070070", 1, "99", "02", "01220104"),
    (2019, "01", 4, "2019-06-01", "0100101001", "PROD", "0301-0003", 1, "05", 1, "070070", 1, "99", "02", "01220104"),
    (2021, "01", 5, "2021-02-01", "0200101", "PROD", "0301-0004", 1, "05", 1, "070070", 1, "99", "02", "01220104"),
    (2021, "01", 6, "2021-05-20", "0100101002", "PROD", " 0301-0005 ", 1, "05", 1, "070070", 1, "99", "02", "01220104"),
    (2021, "01", 6, "2021-05-20", "0100101002", "PROD", " 0301-0005 ", 2, "05", 1, "070070", 1, "99", "02", "01220104"),
]

RESULTS_COLUMNS = [
    "AAR", "ANSVARLIG_SEKSJON", "INNSENDELSESNUMMER", "MOTTATT_DATO", "HENSIKTKODE",
    "EIER_LOKALITETTYPE", "EIER_LOKALITETNR", "PROVENUMMER", "ARTKODE",
    "UNDERSOKELSESNUMMER", "METODEKODE", "KONKLUSJONSNUMMER", "KONKL_TYPEKODE",
    "KONKL_KJENNELSEKODE", "KONKL_ANALYTTKODE",
]


@pytest.fixture(autouse=True)
def _reset_lookup_caches(monkeypatch):
    """Each test starts without cached lookup tables."""
    monkeypatch.setattr(lookup_loader, "_COLUMN_STANDARDS_CACHE", None)
    monkeypatch.setattr(lookup_loader, "_CODES_2_TEXT_CACHE", None)


@pytest.fixture
def column_standards():
    return lookup_loader.read_column_standards(RESOURCES_DIR / COLUMN_STANDARDS_FILE)


@pytest.fixture
def raw_results():
    df = pd.DataFrame(RESULTS_ROWS, columns=RESULTS_COLUMNS)
    df.insert(0, "SAK_M_RES_ID", range(1, len(df) + 1))
    df["ANALYTTKODE_FUNN"] = ""
    return df


@pytest.fixture
def raw_sakskjema(raw_results):
    cols = [
        "AAR", "ANSVARLIG_SEKSJON", "INNSENDELSESNUMMER", "MOTTATT_DATO",
        "HENSIKTKODE", "EIER_LOKALITETTYPE", "EIER_LOKALITETNR",
    ]
    df = raw_results[cols].drop_duplicates().reset_index(drop=True)
    df["SAKSKOMMENTAR"] = "  "
    return df


@pytest.fixture
def translation_table():
    return pd.DataFrame(
        [
            ("hensikt", "0100101001", "Overvåking storfe", pd.NaT),
            ("hensikt", "0100101002", "Overvåking storfe, slakteri", pd.NaT),
            ("hensikt", "0900101", "Ringtest", pd.NaT),
            ("konkl_type", "99", "Sluttkonklusjon", pd.NaT),
            ("kjennelse", "01", "Påvist", pd.NaT),
            ("kjennelse", "02", "Ikke påvist", pd.NaT),
            ("analytt", "01220104", "Mycobacterium bovis (gammel)", pd.Timestamp("2010-01-01")),
            ("analytt", "01220104", "Mycobacterium bovis", pd.NaT),
            ("metode", "070070", "Dyrking", pd.NaT),
        ],
        columns=["type", "kode", "navn", "utgatt_dato"],
    )


@pytest.fixture
def pjs_engine(tmp_path, raw_results, raw_sakskjema):
    """SQLite database with the two PJS views as plain tables."""
    engine = create_engine(f"sqlite:///{tmp_path / 'pjs.db'}")
    raw_results.to_sql("v2_sak_m_res", engine, index=False)
    raw_sakskjema.to_sql("v_sakskjema", engine, index=False)
    yield engine
    engine.dispose()
