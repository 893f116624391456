"""Tests for the SQLAlchemy-backed stores (SQLite)."""

from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import text

from conftest import PEOPLE_CSV, make_settings
from tabletasks.core.db import SqlFileStore, SqlJobStore, SqlUsageEventStore, init_db, make_engine
from tabletasks.core.errors import RateLimited, StoreUnavailable
from tabletasks.core.runtime import build_runtime
from tabletasks.io.schemas import FileRecord, JobRecord, UsageEvent
from tabletasks.services.usage import enforce_rate_limit


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'tabletasks.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def jobs(engine):
    return SqlJobStore(engine)


def _job(job_id, owner_id="alice"):
    return JobRecord(id=job_id, owner_id=owner_id, app_id="csv_profiler", input_file_id="f1")


class TestSqlJobStore:
    def test_insert_and_select(self, jobs):
        jobs.insert(_job("j1"))
        row = jobs.select_by_id("j1")

        assert row.id == "j1"
        assert row.status == "queued"
        assert row.options == {}
        assert jobs.select_by_id("missing") is None

    def test_select_oldest_uses_insertion_order_on_ties(self, jobs):
        first, second = _job("j1"), _job("j2")
        second.created_at = first.created_at
        jobs.insert(first)
        jobs.insert(second)

        assert jobs.select_oldest("queued").id == "j1"
        assert jobs.select_oldest("failed") is None

    def test_conditional_update_is_compare_and_swap(self, jobs):
        jobs.insert(_job("j1"))
        patch = {"status": "processing", "progress": 5}

        assert jobs.conditional_update("j1", "queued", patch) == 1
        assert jobs.conditional_update("j1", "queued", patch) == 0
        assert jobs.select_by_id("j1").progress == 5

    def test_update_unconditional_stores_json(self, jobs):
        jobs.insert(_job("j1"))
        jobs.update_unconditional("j1", {"status": "completed", "progress": 100, "result": {"summary": {"rowCount": 3}}})

        row = jobs.select_by_id("j1")
        assert row.status == "completed"
        assert row.result == {"summary": {"rowCount": 3}}

    def test_list_for_owner_newest_first(self, jobs):
        for job_id in ("j1", "j2", "j3"):
            jobs.insert(_job(job_id))
        jobs.insert(_job("other", owner_id="bob"))

        assert [j.id for j in jobs.list_for_owner("alice", limit=2)] == ["j3", "j2"]

    def test_concurrent_claims_have_one_winner(self, jobs):
        jobs.insert(_job("j1"))

        def claim(_):
            return jobs.conditional_update("j1", "queued", {"status": "processing", "progress": 5})

        with ThreadPoolExecutor(max_workers=6) as pool:
            results = list(pool.map(claim, range(6)))

        assert sorted(results) == [0] * 5 + [1]

    def test_database_errors_become_store_unavailable(self, engine, jobs):
        with engine.begin() as conn:
            conn.execute(text("DROP TABLE jobs"))
        with pytest.raises(StoreUnavailable):
            jobs.select_oldest("queued")


class TestSqlFileAndUsageStores:
    def test_file_round_trip(self, engine):
        store = SqlFileStore(engine)
        record = FileRecord(
            id="f1",
            owner_id="alice",
            storage_key="alice/2024/01/01/x-a.csv",
            filename="a.csv",
            content_type="text/csv",
            size_bytes=3,
            content_hash="0" * 64,
        )
        store.insert(record)

        loaded = store.select_by_id("f1")
        assert loaded.storage_key == record.storage_key
        assert loaded.source == "upload"
        assert store.select_by_id("nope") is None

    def test_usage_counts(self, engine):
        store = SqlUsageEventStore(engine)
        store.insert(UsageEvent(id="e1", owner_id="alice", event_type="upload", metadata={"size_bytes": 3}))
        store.insert(UsageEvent(id="e2", owner_id="alice", event_type="upload"))
        store.insert(UsageEvent(id="e3", owner_id="bob", event_type="upload"))
        store.insert(UsageEvent(id="e4", owner_id="alice", event_type="download"))

        assert store.count_recent("upload", minutes=5) == 3
        assert store.count_recent("upload", owner_id="alice", minutes=5) == 2

    def test_rate_limit_counts_per_owner(self, engine):
        store = SqlUsageEventStore(engine)
        store.insert(UsageEvent(id="e1", owner_id="alice", event_type="job_created"))
        store.insert(UsageEvent(id="e2", owner_id="alice", event_type="job_created"))

        with pytest.raises(RateLimited, match="Limit is 2 job_created events per minute."):
            enforce_rate_limit(store, "alice", "job_created", 2)
        enforce_rate_limit(store, "bob", "job_created", 2)
        enforce_rate_limit(store, "alice", "job_created", 3)
        enforce_rate_limit(store, "alice", "job_created", 0)


class TestRunnerOnSql:
    def test_full_job_lifecycle(self, tmp_path, blobs):
        cfg = make_settings(DATABASE_URL=f"sqlite:///{tmp_path / 'runtime.db'}")
        runtime = build_runtime(cfg, blobs=blobs)
        upload = runtime.files.upload_file("alice", "people.csv", PEOPLE_CSV, "text/csv")
        job = runtime.jobs.create_job("alice", "csv_profiler", upload.id)

        outcomes = runtime.runner.run_batch(limit=3)

        assert [o.status for o in outcomes] == ["completed"]
        done = runtime.jobs.get_job("alice", job.id)
        assert done.progress == 100
        assert done.result["summary"]["duplicateRowCount"] == 1
        assert runtime.files.get_file_by_id(done.result_file_id).source == "job_result"
        assert runtime.usage_store.count_recent("job_completed", owner_id="alice", minutes=5) == 1
