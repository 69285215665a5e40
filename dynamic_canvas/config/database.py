"""
Database Configuration
=====================

PostgreSQL connection pool and schema management.
"""

from typing import Optional, Any, AsyncGenerator, List
import asyncpg  # type: ignore[import-untyped]
from contextlib import asynccontextmanager

from .settings import get_settings
from .logging import get_logger

logger = get_logger(__name__)


SCHEMA_STATEMENTS: List[str] = [
    """
    CREATE TABLE IF NOT EXISTS categories (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL UNIQUE,
        color TEXT DEFAULT '#3B82F6',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS canvas_templates (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        config TEXT NOT NULL,
        elements TEXT NOT NULL,
        category_id TEXT REFERENCES categories (id) ON DELETE SET NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS canvas_variables (
        id SERIAL PRIMARY KEY,
        template_id TEXT NOT NULL REFERENCES canvas_templates (id) ON DELETE CASCADE,
        variable_name TEXT NOT NULL,
        element_id TEXT NOT NULL,
        element_type TEXT NOT NULL,
        default_value TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_template_variables
    ON canvas_variables (template_id, variable_name)
    """,
    """
    CREATE TABLE IF NOT EXISTS template_groups (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT DEFAULT '',
        is_active BOOLEAN DEFAULT FALSE,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS template_group_members (
        group_id TEXT NOT NULL REFERENCES template_groups (id) ON DELETE CASCADE,
        template_id TEXT NOT NULL REFERENCES canvas_templates (id) ON DELETE CASCADE,
        PRIMARY KEY (group_id, template_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS template_schedules (
        id TEXT PRIMARY KEY,
        group_id TEXT NOT NULL REFERENCES template_groups (id) ON DELETE CASCADE,
        year INTEGER NOT NULL,
        month INTEGER NOT NULL,
        day INTEGER NOT NULL,
        hour INTEGER NOT NULL,
        minute INTEGER NOT NULL,
        is_executed BOOLEAN DEFAULT FALSE,
        executed_at TIMESTAMP,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_template_schedules_pending
    ON template_schedules (is_executed, year, month, day, hour, minute)
    """,
]


class DatabaseManager:
    """Connection manager for the PostgreSQL template store."""

    def __init__(self) -> None:
        self.settings = get_settings()
        self._pool: Optional[asyncpg.Pool] = None  # type: ignore[type-arg]

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.database_url)

    @property
    def is_initialized(self) -> bool:
        return self._pool is not None

    async def initialize(self) -> None:
        """Create the connection pool and ensure the schema exists."""
        if not self.is_configured:
            logger.warning("No database URL configured, template store disabled")
            return

        try:
            self._pool = await asyncpg.create_pool(
                self.settings.database_url,
                min_size=self.settings.database_min_pool,
                max_size=self.settings.database_max_pool,
                command_timeout=self.settings.database_command_timeout,
            )
            logger.info("PostgreSQL connection established")
        except Exception as e:
            logger.error("Failed to connect to PostgreSQL", error=str(e))
            raise

        await self.create_schema()

    async def create_schema(self) -> None:
        async with self.connection() as conn:
            async with conn.transaction():
                for statement in SCHEMA_STATEMENTS:
                    await conn.execute(statement)
        logger.info("Database schema ready", tables=6)

    async def close(self) -> None:
        """Close the connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("PostgreSQL connection closed")

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[Any, None]:
        """Acquire a pooled connection."""
        if not self._pool:
            raise RuntimeError("PostgreSQL not initialized")

        async with self._pool.acquire() as connection:
            yield connection

    async def check_health(self) -> bool:
        """Check PostgreSQL connection health."""
        if not self._pool:
            return False
        try:
            async with self.connection() as conn:
                await conn.execute("SELECT 1")
            return True
        except Exception as e:
            logger.error("PostgreSQL health check failed", error=str(e))
            return False


# Global database manager instance
db_manager = DatabaseManager()


async def initialize_databases() -> None:
    """Initialize database connections."""
    await db_manager.initialize()


async def close_databases() -> None:
    """Close database connections."""
    await db_manager.close()
