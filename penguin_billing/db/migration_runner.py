"""
Migration Runner - applies pending Alembic revisions at startup.

The play_purchases schema lives only in alembic/versions; nothing creates
tables through metadata.create_all.
"""

from dataclasses import dataclass
from pathlib import Path

from sqlalchemy import Engine, create_engine
from structlog import get_logger

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from penguin_billing.config import settings

logger = get_logger(__name__)

# alembic.ini sits at the project root, next to the alembic/ script directory
ALEMBIC_INI_PATH = Path(__file__).parent.parent.parent / "alembic.ini"


@dataclass(frozen=True)
class MigrationStatus:
    """Schema revision of the database versus the newest script."""

    current_revision: str | None
    head_revision: str | None

    @property
    def pending(self) -> bool:
        return self.current_revision != self.head_revision


def get_sync_database_url(url: str | None = None) -> str:
    """
    Alembic runs on a synchronous driver: asyncpg URLs become psycopg2 URLs
    and the legacy postgres:// scheme is normalized.
    """
    url = url or settings.database_url
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://") :]
    return url.replace("+asyncpg", "+psycopg2")


def build_alembic_config(sync_url: str) -> Config:
    config = Config(str(ALEMBIC_INI_PATH))
    config.set_main_option("script_location", str(ALEMBIC_INI_PATH.parent / "alembic"))
    # ConfigParser interpolation would choke on URL-encoded passwords
    config.set_main_option("sqlalchemy.url", sync_url.replace("%", "%%"))
    return config


def _current_revision(engine: Engine) -> str | None:
    with engine.connect() as conn:
        return MigrationContext.configure(conn).get_current_revision()


def _head_revision(config: Config) -> str | None:
    return ScriptDirectory.from_config(config).get_current_head()


def run_migrations(url: str | None = None) -> MigrationStatus | None:
    """
    Upgrade the database to head if it is behind.

    Returns:
        Status after the run, or None when alembic.ini is absent

    Raises:
        RuntimeError: If any step fails; the application must not start
    """
    if not ALEMBIC_INI_PATH.exists():
        logger.warning("alembic_config_missing", path=str(ALEMBIC_INI_PATH))
        return None

    try:
        sync_url = get_sync_database_url(url)
        config = build_alembic_config(sync_url)
        engine = create_engine(sync_url)
        try:
            status = MigrationStatus(_current_revision(engine), _head_revision(config))
            if not status.pending:
                logger.info("database_schema_up_to_date", revision=status.current_revision)
                return status

            logger.info(
                "running_migrations",
                from_revision=status.current_revision,
                to_revision=status.head_revision,
            )
            command.upgrade(config, "head")

            status = MigrationStatus(_current_revision(engine), status.head_revision)
            logger.info("migrations_complete", revision=status.current_revision)
            return status
        finally:
            engine.dispose()

    except Exception as e:
        logger.error("migration_failed", error=str(e))
        raise RuntimeError(f"Database migration failed: {e}") from e
