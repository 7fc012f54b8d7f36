"""Tests for the per-security CSV loader."""

import numpy as np
import pandas as pd
import pytest

from adapters.data.csv_loader import CSVDataLoader, list_universe_files, load_universe, to_ymd

COLUMNS = {"date": "交易日期", "close": "收盘价_复权", "high": "最高价_复权", "low": "最低价_复权"}
HEADER = "交易日期,股票名称,收盘价_复权,最高价_复权,最低价_复权\n"


def write_csv(path, rows, encoding="gbk", header=HEADER):
    path.write_text(header + "".join(rows), encoding=encoding)
    return path


def test_load_series_from_gbk(tmp_path):
    path = write_csv(tmp_path / "sh600000.csv", [
        "2024-01-02,浦发银行,10.0,10.5,9.5\n",
        "2024-01-03,浦发银行,,10.6,9.6\n",
        "20240104,浦发银行,10.2,10.7,9.7\n",
    ])
    loader = CSVDataLoader(COLUMNS, encoding="gbk", name_column="股票名称")
    series = loader.load_series(path)

    assert series.security_id == "sh600000.csv"
    assert series.name == "浦发银行"
    assert list(series.dates) == [20240102, 20240103, 20240104]
    assert series.close[0] == 10.0
    assert np.isnan(series.close[1])
    assert list(series.high) == [10.5, 10.6, 10.7]
    assert series.open is None


def test_utf8_with_custom_columns(tmp_path):
    path = write_csv(tmp_path / "AAA.csv", ["2024/01/02,1.5\n", "2024/01/03,1.6\n"],
                     encoding="utf-8", header="date,close\n")
    loader = CSVDataLoader({"date": "date", "close": "close"}, encoding="utf-8")
    series = loader.load_series(path, security_id="AAA")

    assert series.security_id == "AAA"
    assert list(series.dates) == [20240102, 20240103]
    assert series.high is None
    assert series.name is None


def test_missing_column_names_file_and_header(tmp_path):
    path = write_csv(tmp_path / "bad.csv", ["2024-01-02,1.0\n"], encoding="utf-8", header="date,price\n")
    loader = CSVDataLoader({"date": "date", "close": "close"}, encoding="utf-8")
    with pytest.raises(ValueError, match="bad.csv.*close"):
        loader.load(path)


def test_to_ymd_formats():
    values = pd.Series(["2007-01-04", "2007/01/05", "20070108", "2007-01-09 15:00:00", "n/a"])
    assert list(to_ymd(values)) == [20070104, 20070105, 20070108, 20070109, -1]


def test_universe_listing_is_sorted_filtered_and_limited(tmp_path):
    for name in ["c.csv", "a.csv", "b.csv"]:
        write_csv(tmp_path / name, ["2024-01-02,1.0\n"], encoding="utf-8", header="date,close\n")
    (tmp_path / "notes.txt").write_text("ignore me")

    assert [p.name for p in list_universe_files(tmp_path)] == ["a.csv", "b.csv", "c.csv"]
    assert [p.name for p in list_universe_files(tmp_path, files=["c.csv", "a.csv"])] == ["a.csv", "c.csv"]
    assert [p.name for p in list_universe_files(tmp_path, limit=2)] == ["a.csv", "b.csv"]


def test_load_universe_skips_empty_files(tmp_path):
    write_csv(tmp_path / "a.csv", ["2024-01-02,1.0\n"], encoding="utf-8", header="date,close\n")
    write_csv(tmp_path / "b.csv", [], encoding="utf-8", header="date,close\n")
    loader = CSVDataLoader({"date": "date", "close": "close"}, encoding="utf-8")

    universe = load_universe(tmp_path, loader)
    assert list(universe) == ["a.csv"]


def test_missing_data_dir(tmp_path):
    with pytest.raises(FileNotFoundError):
        list_universe_files(tmp_path / "nope")
