import json

import pytest

from erp import cli
from erp.config import DEFAULT_BATCH_SIZE, ENV_BATCH_SIZE, ENV_DATA_DIR, load_settings


def test_load_settings_explicit_dir(tmp_path, monkeypatch):
    monkeypatch.delenv(ENV_BATCH_SIZE, raising=False)
    s = load_settings(tmp_path / "data")
    assert s.db_path == (tmp_path / "data" / "erp.db").resolve()
    assert s.data_dir.exists()
    assert s.sales_batch_size == DEFAULT_BATCH_SIZE
    assert s.currency == "KRW"


def test_load_settings_from_env(tmp_path, monkeypatch):
    monkeypatch.setenv(ENV_DATA_DIR, str(tmp_path))
    monkeypatch.setenv(ENV_BATCH_SIZE, "25")
    s = load_settings()
    assert s.data_dir == tmp_path.resolve()
    assert s.sales_batch_size == 25


@pytest.mark.parametrize("raw", ["abc", "0", "-5"])
def test_invalid_batch_size_env(tmp_path, monkeypatch, raw):
    monkeypatch.setenv(ENV_BATCH_SIZE, raw)
    with pytest.raises(ValueError):
        load_settings(tmp_path)


def test_cli_missing_workbook_exits_nonzero(tmp_path, monkeypatch, capsys):
    monkeypatch.setenv(ENV_DATA_DIR, str(tmp_path))
    monkeypatch.delenv(ENV_BATCH_SIZE, raising=False)

    with pytest.raises(SystemExit) as exc:
        cli.main([str(tmp_path / "missing.xlsx"), "--db", str(tmp_path / "t.db"), "--json"])
    assert exc.value.code == 1

    out = json.loads(capsys.readouterr().out)
    assert out["status"] == "FAILED"
    assert out["failed_stage"] == "READ_SOURCE"


def test_cli_rejects_unknown_layout():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["book.xlsx", "--layout", "invoice"])
