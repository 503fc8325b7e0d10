import pytest

from upsert_hunt.probe import ProbeResult, ProbeStep, probe_values, upsert_probe, upsert_series
from upsert_hunt.schema import schema_tx_data
from upsert_hunt.workspace import DatabaseHandle


def seeded(conn, size=2, base="Markus"):
    conn.transact(schema_tx_data(size))
    conn.transact([{"name": base}])
    return conn.db().max_eid


class TestManualProbe:
    def test_reports_each_write_and_read(self, schema_conn):
        steps = upsert_series(schema_conn, 10, "name", ["A", "B", "A"])

        assert steps == [ProbeStep("A", "A"), ProbeStep("B", "B"), ProbeStep("A", "A")]
        assert all(step.matches for step in steps)

    def test_reports_divergence_without_raising(self, stale_handle):
        with stale_handle.session() as conn:
            entity = seeded(conn, size=3)
            steps = upsert_series(conn, entity, "name", ["Markus1", "Markus"])

        assert steps[0] == ProbeStep("Markus1", "Markus1")
        assert steps[1].read == "Markus1"
        assert not steps[1].matches


class TestAutomaticProbe:
    def test_correct_store_shows_no_errors(self, conn):
        entity = seeded(conn)
        result = upsert_probe(conn, entity, "name")

        assert result == ProbeResult(error1=False, error2=False)
        assert not result.diverged
        assert conn.db().pull(entity)["name"] == "Markus11"

    def test_stale_store_shows_first_error(self, stale_handle):
        with stale_handle.session() as conn:
            entity = seeded(conn, size=3)
            result = upsert_probe(conn, entity, "name")

        assert result.error1
        assert not result.error2
        assert result.diverged

    def test_below_threshold_the_stale_store_is_fine(self, stale_handle):
        with stale_handle.session() as conn:
            entity = seeded(conn, size=2)
            assert not upsert_probe(conn, entity, "name").diverged

    def test_same_start_state_gives_same_result(self, stale_engine_factory, store_config):
        results = []
        for _ in range(3):
            handle = DatabaseHandle(engine=stale_engine_factory(3), config=store_config)
            with handle.session() as conn:
                entity = seeded(conn, size=4)
                results.append(upsert_probe(conn, entity, "name"))
        assert results[0] == results[1] == results[2]

    def test_custom_values(self, conn):
        entity = seeded(conn, base="x")
        result = upsert_probe(conn, entity, "name", probe_values("x"))
        assert not result.diverged
        assert conn.db().pull(entity)["name"] == "x11"


def test_probe_values_share_a_prefix():
    assert probe_values() == ("Markus", "Markus1", "Markus2", "Markus11")
    assert all(value.startswith("Q") for value in probe_values("Q"))


@pytest.mark.parametrize(
    "error1,error2,diverged",
    [(False, False, False), (True, False, True), (False, True, True), (True, True, True)],
)
def test_combined_flag(error1, error2, diverged):
    assert ProbeResult(error1, error2).diverged is diverged


def test_lost_tail_write_shows_second_error(lost_write_handle):
    with lost_write_handle.session() as conn:
        entity = seeded(conn, size=3)
        result = upsert_probe(conn, entity, "name")
        assert conn.db().pull(entity)["name"] == "Markus2"

    assert result == ProbeResult(error1=False, error2=True)
    assert result.diverged
