import pytest

from upsert_hunt.backends import SchemaError
from upsert_hunt.backends.memory import MemoryConnection, MemoryEngine
from upsert_hunt.tester import auto_test, check_size
from upsert_hunt.transfer import read_log
from upsert_hunt.workspace import DatabaseHandle, SetupError


class FailingSchemaConnection(MemoryConnection):
    def transact(self, tx_data):
        raise SchemaError("schema rejected")


def test_correct_store_is_not_vulnerable(handle, tmp_path):
    output = tmp_path / "db-error"
    report = check_size(3, handle=handle, output_path=output)

    assert not report.vulnerable
    assert report.exported_to is None
    assert not output.exists()
    assert not handle.engine.database_exists(handle.config)


def test_probe_targets_the_seed_entity(handle, tmp_path):
    # x + 1 schema entities, the seed comes right after them
    assert check_size(5, handle=handle, output_path=tmp_path / "out").entity == 7


def test_vulnerable_size_is_exported_and_cleaned_up(stale_handle, tmp_path):
    output = tmp_path / "db-error"
    report = check_size(3, handle=stale_handle, output_path=output)

    assert report.vulnerable
    assert report.probe.error1
    assert report.exported_to == output
    datoms = list(read_log(output))
    assert "name" in {d.a for d in datoms}
    assert {d.v for d in datoms if d.a == "db/ident"} >= {"name", "attribute2"}
    assert any(d.e == report.entity and d.v == "Markus11" for d in datoms)
    assert not stale_handle.engine.database_exists(stale_handle.config)


def test_auto_test_returns_the_combined_flag(stale_handle, tmp_path):
    output = tmp_path / "db-error"
    assert auto_test(3, handle=stale_handle, output_path=output) is True
    assert auto_test(2, handle=stale_handle, output_path=output) is False


def test_existing_database_is_replaced(handle, tmp_path):
    handle.engine.create_database(handle.config)
    handle.engine.connect(handle.config).transact(
        [{"db/ident": "junk", "db/valueType": "db.type/long"}]
    )

    report = check_size(1, handle=handle, output_path=tmp_path / "out")

    assert not report.vulnerable
    assert not handle.engine.database_exists(handle.config)


def test_setup_failure_still_deletes_the_database(store_config, tmp_path):
    engine = MemoryEngine()
    engine.connection_class = FailingSchemaConnection
    handle = DatabaseHandle(engine=engine, config=store_config)

    with pytest.raises(SetupError):
        check_size(2, handle=handle, output_path=tmp_path / "out")
    assert not engine.database_exists(store_config)


def test_sizes_can_run_on_independent_stores(stale_handle, tmp_path):
    first = stale_handle.for_size(3)
    second = stale_handle.for_size(4)
    assert first.config.id != second.config.id

    assert check_size(3, handle=first, output_path=tmp_path / "a").vulnerable
    assert check_size(4, handle=second, output_path=tmp_path / "b").vulnerable


def test_tail_divergence_is_exported(lost_write_handle, tmp_path):
    output = tmp_path / "db-error"
    report = check_size(3, handle=lost_write_handle, output_path=output)

    assert report.vulnerable
    assert not report.probe.error1
    assert report.probe.error2
    assert report.exported_to == output
    values = [d.v for d in read_log(output) if d.e == report.entity and d.a == "name" and d.added]
    assert "Markus11" not in values
    assert not lost_write_handle.engine.database_exists(lost_write_handle.config)


def test_tail_divergence_below_threshold(lost_write_handle, tmp_path):
    output = tmp_path / "db-error"
    assert not check_size(2, handle=lost_write_handle, output_path=output).vulnerable
    assert not output.exists()
