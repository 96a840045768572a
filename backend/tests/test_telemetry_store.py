from __future__ import annotations

from telemetry.singleton import get_store, record_event, reset_store


def test_telemetry_store_writes_rows(tmp_path, monkeypatch):
    db_path = tmp_path / "telemetry.duckdb"
    monkeypatch.setenv("RENTMAP_TELEMETRY_PATH", str(db_path))
    monkeypatch.setenv("RENTMAP_TELEMETRY", "1")

    store = get_store()
    assert store is not None

    store.record(
        endpoint="/clusters",
        engine="in_memory",
        zoom=10,
        bbox=(-122.5, 37.7, -122.3, 37.8),
        stats={"featureCount": 4, "indexCacheHit": True, "timingsMs": {"total": 9.9}},
    )
    store.flush(timeout_s=2.0)

    # Use the existing connection; DuckDB disallows opening the same file with different configs.
    n = int(store.conn.execute("select count(*) from events").fetchone()[0])
    assert n == 1

    row = store.conn.execute("select endpoint, engine, zoom, bbox_west from events").fetchone()
    assert row == ("/clusters", "in_memory", 10, -122.5)

    (summary,) = store.summary()
    assert summary["n"] == 1
    assert summary["avgFeatures"] == 4.0

    (slow,) = store.slowest(limit=5)
    assert slow["totalMs"] == 9.9
    assert slow["zoom"] == 10


def test_telemetry_reset_deletes_db(tmp_path, monkeypatch):
    db_path = tmp_path / "telemetry.duckdb"
    monkeypatch.setenv("RENTMAP_TELEMETRY_PATH", str(db_path))
    monkeypatch.setenv("RENTMAP_TELEMETRY", "1")

    store = get_store()
    assert store is not None
    store.record(endpoint="/clusters", engine="duckdb", zoom=3, bbox=None, stats={})
    assert store.path.resolve() == db_path.resolve()

    reset_store()
    assert not db_path.exists()


def test_disabled_telemetry_is_a_no_op(monkeypatch):
    monkeypatch.setenv("RENTMAP_TELEMETRY", "off")
    assert get_store() is None
    record_event(endpoint="/clusters", engine="in_memory", zoom=0, bbox=None, stats={})
