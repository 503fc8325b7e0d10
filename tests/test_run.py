import json

import pytest

import upsert_hunt.workspace as workspace
from upsert_hunt.run import main, parse_args
from upsert_hunt.tester import check_size


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "tc_config.json"
    path.write_text(
        json.dumps({"store": {"id": "run"}, "output_path": str(tmp_path / "db-error")}),
        encoding="utf-8",
    )
    return str(path)


@pytest.fixture
def stale_store(monkeypatch, stale_engine):
    monkeypatch.setattr(workspace, "engine_for", lambda config: stale_engine)
    return stale_engine


def test_mode_is_required():
    with pytest.raises(SystemExit) as excinfo:
        parse_args([])
    assert excinfo.value.code == 2


def test_modes_are_exclusive():
    with pytest.raises(SystemExit):
        parse_args(["--test", "3", "--search", "0"])


def test_single_size_ok(config_file, stale_store, tmp_path):
    assert main(["--config", config_file, "--test", "2"]) == 0
    assert not (tmp_path / "db-error").exists()


def test_single_size_vulnerable(config_file, stale_store, tmp_path):
    assert main(["--config", config_file, "--test", "3"]) == 4
    assert (tmp_path / "db-error").exists()


def test_output_flag_wins(config_file, stale_store, tmp_path):
    output = tmp_path / "elsewhere"
    assert main(["--config", config_file, "--test", "3", "--output", str(output)]) == 4
    assert output.exists()


def test_negative_size(config_file, stale_store):
    assert main(["--config", config_file, "--test", "-1"]) == 1
    assert main(["--config", config_file, "--search", "-1"]) == 1


def test_search_finds_first_size(config_file, stale_store, tmp_path):
    assert main(["--config", config_file, "--search", "0"]) == 0
    assert (tmp_path / "db-error").exists()


def test_search_bound_exhausted(config_file, stale_store, tmp_path):
    assert main(["--config", config_file, "--search", "0", "--max-attempts", "2"]) == 3
    assert not (tmp_path / "db-error").exists()


def test_replay_exit_codes(
    config_file, stale_store, stale_engine_factory, store_config, tmp_path, monkeypatch
):
    case = tmp_path / "case.log"
    check_size(3, handle=workspace.DatabaseHandle(stale_store, store_config), output_path=case)

    assert main(["--config", config_file, "--replay", str(case)]) == 4

    monkeypatch.setattr(workspace, "engine_for", lambda config: stale_engine_factory(100))
    assert main(["--config", config_file, "--replay", str(case)]) == 0


def test_replay_missing_file(config_file, stale_store, tmp_path):
    assert main(["--config", config_file, "--replay", str(tmp_path / "missing")]) == 1


def test_replay_undecodable_file(config_file, stale_store, tmp_path):
    case = tmp_path / "case.log"
    case.write_bytes(b'{"e": 1, "a": "name", "v": "\xff", "tx": 536870914, "added": true}\n')
    assert main(["--config", config_file, "--replay", str(case)]) == 1


def test_bad_config(tmp_path, stale_store):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"store": {"backend": "sqlite"}}), encoding="utf-8")
    assert main(["--config", str(path), "--test", "1"]) == 1


def test_env_overrides_need_opt_in(config_file, stale_store, monkeypatch):
    monkeypatch.setenv("UPSERT_HUNT_BATCH_SIZE", "lots")
    assert main(["--config", config_file, "--test", "1"]) == 0
    assert main(["--config", config_file, "--allow-env-overrides", "--test", "1"]) == 1
