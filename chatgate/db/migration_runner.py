"""
Migration Runner - Brings the schema to the Alembic head at startup.

Runs in a worker thread from the application lifespan (AUTO_MIGRATE=true);
the API only starts serving once users, user_credits, chats, messages and
processed_transactions are at the expected revision.
"""

from dataclasses import dataclass
from pathlib import Path

from sqlalchemy import create_engine

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from chatgate.config import settings
from chatgate.observability.logging import get_logger

logger = get_logger(__name__)

ALEMBIC_INI_PATH = Path(__file__).parent.parent.parent / "alembic.ini"


@dataclass(frozen=True)
class MigrationStatus:
    """Database revision versus the newest migration script."""

    current: str | None
    head: str | None

    @property
    def is_current(self) -> bool:
        return self.current == self.head


def sync_database_url(url: str) -> str:
    """Alembic runs on psycopg2; swap the asyncpg driver in the URL."""
    return url.replace("+asyncpg", "+psycopg2")


def build_alembic_config(database_url: str) -> Config:
    config = Config(str(ALEMBIC_INI_PATH))
    # ConfigParser interpolation treats % specially
    config.set_main_option("sqlalchemy.url", sync_database_url(database_url).replace("%", "%%"))
    return config


def get_migration_status(config: Config, database_url: str) -> MigrationStatus:
    """Read the stamped revision and the script head."""
    engine = create_engine(sync_database_url(database_url))
    try:
        with engine.connect() as conn:
            current = MigrationContext.configure(conn).get_current_revision()
    finally:
        engine.dispose()
    head = ScriptDirectory.from_config(config).get_current_head()
    return MigrationStatus(current=current, head=head)


def run_migrations(database_url: str | None = None) -> None:
    """
    Upgrade to head when the database is behind.

    Raises:
        RuntimeError: A migration failed; the application must not start
    """
    if not ALEMBIC_INI_PATH.exists():
        logger.warning("alembic_config_missing", path=str(ALEMBIC_INI_PATH))
        return

    url = database_url or settings.database_url
    config = build_alembic_config(url)

    try:
        status = get_migration_status(config, url)
        if status.is_current:
            logger.info("schema_up_to_date", revision=status.current)
            return

        logger.info("schema_migrating", from_revision=status.current, to_revision=status.head)
        command.upgrade(config, "head")
        logger.info("schema_migrated", revision=status.head)
    except Exception as e:
        logger.error("schema_migration_failed", error=str(e))
        raise RuntimeError(f"Database migration failed: {e}") from e
