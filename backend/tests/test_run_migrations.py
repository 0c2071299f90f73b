from __future__ import annotations

import types
from pathlib import Path

import pytest
from sqlalchemy import create_engine, inspect, text

from codehelper.config import get_settings
from scripts import run_migrations as runner

INITIAL_REVISION = "20241101_01_initial_schema"


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def _config(monkeypatch, url: str = "sqlite://"):
    monkeypatch.setenv("CODEHELPER_DATABASE_URL", url)
    return runner.get_alembic_config(runner.DEFAULT_CONFIG_PATH)


def test_parse_args_builds_plan(monkeypatch) -> None:
    monkeypatch.setenv("CODEHELPER_DB_MIGRATION_TIMEOUT", "15")

    plan = runner.parse_args(["--seed", "--poll-interval", "0.5", "--config", "custom.ini"])

    assert plan == runner.MigrationPlan(
        revision="head",
        timeout=15,
        poll_interval=0.5,
        config_path=Path("custom.ini"),
        seed=True,
    )


def test_resolve_database_url_prefers_env(monkeypatch) -> None:
    config = _config(monkeypatch)
    assert runner.resolve_database_url(config) == "sqlite://"
    assert config.get_main_option("sqlalchemy.url") == "sqlite://"


def test_resolve_database_url_requires_configuration(monkeypatch) -> None:
    config = _config(monkeypatch)
    monkeypatch.delenv("CODEHELPER_DATABASE_URL")
    with pytest.raises(RuntimeError):
        runner.resolve_database_url(config)


def test_wait_for_database_succeeds_with_sqlite(tmp_path) -> None:
    attempts = runner.wait_for_database(f"sqlite:///{tmp_path / 'ready.sqlite'}", timeout=2, poll_interval=0.1)
    assert attempts == 1


def test_wait_for_database_retries_connection_errors(monkeypatch) -> None:
    class FlakyEngine:
        def __init__(self) -> None:
            self.calls = 0

        def connect(self):
            self.calls += 1
            if self.calls < 3:
                raise runner.OperationalError("SELECT 1", {}, Exception("refused"))
            return create_engine("sqlite://").connect()

        def dispose(self) -> None:
            pass

    monkeypatch.setattr(runner, "create_engine", lambda *_, **__: FlakyEngine())
    monkeypatch.setattr(runner.time, "sleep", lambda _: None)

    assert runner.wait_for_database("postgresql://example", timeout=60, poll_interval=1) == 3


def test_wait_for_database_times_out(monkeypatch) -> None:
    class DownEngine:
        def connect(self) -> types.SimpleNamespace:
            raise runner.OperationalError("SELECT 1", {}, Exception("boom"))

        def dispose(self) -> None:
            pass

    monkeypatch.setattr(runner, "create_engine", lambda *_, **__: DownEngine())
    with pytest.raises(RuntimeError, match="did not become reachable"):
        runner.wait_for_database("postgresql://example", timeout=0, poll_interval=0)


def test_run_migrations_invokes_upgrade(monkeypatch) -> None:
    config = _config(monkeypatch)
    recorded: dict[str, object] = {}

    def fake_wait(url: str, *, timeout: int, poll_interval: float) -> int:
        recorded["wait"] = (url, timeout, poll_interval)
        return 1

    def fake_upgrade(cfg, revision: str) -> None:
        recorded["revision"] = revision
        recorded["script_location"] = cfg.get_main_option("script_location")

    monkeypatch.setattr(runner, "wait_for_database", fake_wait)
    monkeypatch.setattr(runner.command, "upgrade", fake_upgrade)

    assert runner.run_migrations("head", timeout=5, poll_interval=0.1, config=config) is None

    assert recorded["revision"] == "head"
    assert recorded["wait"] == ("sqlite://", 5, 0.1)
    assert str(recorded["script_location"]).endswith("alembic")


def test_upgrade_creates_schema_and_seeds(tmp_path, monkeypatch) -> None:
    url = f"sqlite:///{tmp_path / 'migrated.sqlite'}"
    config = _config(monkeypatch, url)

    revision = runner.run_migrations("head", timeout=5, poll_interval=0.1, config=config, seed=True)

    assert revision == INITIAL_REVISION
    engine = create_engine(url)
    try:
        tables = set(inspect(engine).get_table_names())
        assert {
            "users",
            "assessments",
            "assessment_questions",
            "programming_tasks",
            "chat_sessions",
            "messages",
            "user_task_progress",
        } <= tables
        with engine.connect() as connection:
            assert connection.execute(text("SELECT COUNT(*) FROM programming_tasks")).scalar_one() == 6
            assert connection.execute(text("SELECT COUNT(*) FROM assessment_questions")).scalar_one() == 6
    finally:
        engine.dispose()

    # A second run is a no-op and seeding does not duplicate rows.
    assert runner.run_migrations("head", timeout=5, poll_interval=0.1, config=config) == INITIAL_REVISION
    assert runner.seed_database(url) == {"tasks": 0, "questions": 0}


def test_main_reports_failure(monkeypatch) -> None:
    monkeypatch.delenv("CODEHELPER_DATABASE_URL", raising=False)
    assert runner.main(["--timeout", "0"]) == 1
