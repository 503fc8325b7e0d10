import pytest

from upsert_hunt.backends import EngineError, SchemaError
from upsert_hunt.backends.memory import MemoryEngine
from upsert_hunt.workspace import DatabaseHandle, SetupError


class UndeletableEngine(MemoryEngine):
    def delete_database(self, config):
        raise EngineError("disk is read-only")


@pytest.fixture
def undeletable(store_config):
    return DatabaseHandle(engine=UndeletableEngine(), config=store_config)


def test_session_deletes_on_success(handle):
    with handle.session() as conn:
        assert handle.engine.database_exists(handle.config)
    assert conn.released
    assert not handle.engine.database_exists(handle.config)


def test_session_deletes_on_error(handle):
    with pytest.raises(SchemaError):
        with handle.session() as conn:
            conn.transact([{"colour": "blue"}])
    assert conn.released
    assert not handle.engine.database_exists(handle.config)


def test_failed_teardown_is_a_setup_error(undeletable):
    with pytest.raises(SetupError) as excinfo:
        with undeletable.session():
            pass
    assert isinstance(excinfo.value.__cause__, EngineError)


def test_failed_teardown_keeps_the_original_error(undeletable):
    with pytest.raises(SchemaError):
        with undeletable.session() as conn:
            conn.transact([{"colour": "blue"}])


def test_for_size_gives_distinct_stores(handle):
    assert handle.for_size(3).config.id == "test-3"
    assert handle.for_size(3).engine is handle.engine
