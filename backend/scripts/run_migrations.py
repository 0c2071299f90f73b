"""Bring the Code Helper schema up to date before the API starts.

Waits for the database, upgrades it with Alembic and, with ``--seed``, loads
the starter task catalogue and question bank. Exits non-zero on any failure so
a deploy stops before serving traffic against a stale schema.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from codehelper.config import get_settings
from codehelper.logging_config import configure_logging

LOGGER = logging.getLogger("codehelper.migrations")
BACKEND_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_PATH = BACKEND_ROOT / "alembic.ini"
URL_PLACEHOLDER = "%(CODEHELPER_DATABASE_URL)s"


@dataclass(frozen=True)
class MigrationPlan:
    revision: str = "head"
    timeout: int = 60
    poll_interval: float = 3.0
    config_path: Path = DEFAULT_CONFIG_PATH
    seed: bool = False


def parse_args(argv: Optional[list[str]] = None) -> MigrationPlan:
    defaults = MigrationPlan(
        revision=os.getenv("CODEHELPER_DB_MIGRATION_REVISION", "head"),
        timeout=int(os.getenv("CODEHELPER_DB_MIGRATION_TIMEOUT", "60")),
        poll_interval=float(os.getenv("CODEHELPER_DB_MIGRATION_POLL_INTERVAL", "3")),
    )
    parser = argparse.ArgumentParser(description="Upgrade the Code Helper schema.")
    parser.add_argument("--revision", default=defaults.revision, help="Target revision (default: %(default)s).")
    parser.add_argument(
        "--timeout",
        type=int,
        default=defaults.timeout,
        help="Seconds to wait for the database (default: %(default)s).",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=defaults.poll_interval,
        help="Seconds between connection attempts (default: %(default)s).",
    )
    parser.add_argument("--config", type=Path, default=defaults.config_path, help="alembic.ini to use.")
    parser.add_argument(
        "--seed",
        action="store_true",
        help="Insert the starter tasks and assessment questions after upgrading.",
    )
    args = parser.parse_args(argv)
    return MigrationPlan(
        revision=args.revision,
        timeout=args.timeout,
        poll_interval=args.poll_interval,
        config_path=args.config,
        seed=args.seed,
    )


def get_alembic_config(config_path: str | Path) -> Config:
    config = Config(str(config_path))
    config.set_main_option("script_location", str(BACKEND_ROOT / "alembic"))
    return config


def resolve_database_url(config: Config) -> str:
    """An explicit ``sqlalchemy.url`` wins; otherwise the service's own setting is used."""
    url = config.get_main_option("sqlalchemy.url")
    if url and url != URL_PLACEHOLDER:
        return url
    env_url = get_settings().database_url
    if not env_url:
        raise RuntimeError("CODEHELPER_DATABASE_URL must be set before running migrations.")
    config.set_main_option("sqlalchemy.url", env_url)
    return env_url


def wait_for_database(database_url: str, *, timeout: int, poll_interval: float) -> int:
    """Retry ``SELECT 1`` until it succeeds; returns the number of attempts it took.

    Only connection failures are retried. Any other database error, or the
    deadline passing, raises ``RuntimeError``.
    """
    deadline = time.monotonic() + timeout
    engine = create_engine(database_url, pool_pre_ping=True)
    attempts = 0
    last_error: Optional[Exception] = None
    try:
        while True:
            attempts += 1
            try:
                with engine.connect() as connection:
                    connection.execute(text("SELECT 1"))
            except OperationalError as exc:
                last_error = exc
                LOGGER.warning("Database not reachable (attempt %d): %s", attempts, exc)
            except SQLAlchemyError as exc:
                raise RuntimeError(f"Database rejected the readiness check: {exc}") from exc
            else:
                LOGGER.info("Database reachable after %d attempt(s).", attempts)
                return attempts
            if time.monotonic() + poll_interval > deadline:
                break
            time.sleep(poll_interval)
    finally:
        engine.dispose()
    raise RuntimeError(f"Database did not become reachable within {timeout}s.") from last_error


def current_revision(database_url: str) -> Optional[str]:
    engine = create_engine(database_url)
    try:
        with engine.connect() as connection:
            return MigrationContext.configure(connection).get_current_revision()
    finally:
        engine.dispose()


def seed_database(database_url: str) -> dict[str, int]:
    from codehelper.seed import seed_catalog

    engine = create_engine(database_url)
    try:
        with Session(engine) as session:
            created = seed_catalog(session)
            session.commit()
    finally:
        engine.dispose()
    return created


def run_migrations(
    revision: str,
    *,
    timeout: int,
    poll_interval: float,
    config: Optional[Config] = None,
    seed: bool = False,
) -> Optional[str]:
    """Upgrade to ``revision``; returns the revision the database ends up at."""
    config = config or get_alembic_config(DEFAULT_CONFIG_PATH)
    database_url = resolve_database_url(config)
    wait_for_database(database_url, timeout=timeout, poll_interval=poll_interval)

    before = current_revision(database_url)
    LOGGER.info("Upgrading schema from %s to %s", before or "<empty>", revision)
    command.upgrade(config, revision)
    after = current_revision(database_url)
    if after == before:
        LOGGER.info("Schema already at %s.", after)
    else:
        LOGGER.info("Schema now at %s.", after)

    if seed:
        LOGGER.info("Seeded catalogue: %s", seed_database(database_url))
    return after


def main(argv: Optional[list[str]] = None) -> int:
    configure_logging()
    plan = parse_args(argv)
    try:
        run_migrations(
            plan.revision,
            timeout=plan.timeout,
            poll_interval=plan.poll_interval,
            config=get_alembic_config(plan.config_path),
            seed=plan.seed,
        )
    except Exception:
        LOGGER.exception("Migration run failed")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
