"""
Persistence layer for VIP entitlement windows.

One vip_users row per Discord user. Rows are never deleted; losing VIP is
written as vip_until = 0 so trial_until survives as history.
"""

from app.db.helpers import DatabaseError, execute_query, fetch_all, fetch_one
from app.features.vip_sync.domain import EntitlementRecord
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class EntitlementRepositoryError(DatabaseError):
    """More specific exception for repository failures."""


class EntitlementRepository:
    """Postgres-backed entitlement store used by the sync and status paths."""

    SCHEMA_STATEMENTS = (
        """
        CREATE TABLE IF NOT EXISTS vip_users (
            user_id TEXT PRIMARY KEY,
            vip_until BIGINT NOT NULL DEFAULT 0,
            trial_until BIGINT NOT NULL DEFAULT 0
        )
        """,
        # Installs created before trial tracking only had user_id
        "ALTER TABLE vip_users ADD COLUMN IF NOT EXISTS vip_until BIGINT NOT NULL DEFAULT 0",
        "ALTER TABLE vip_users ADD COLUMN IF NOT EXISTS trial_until BIGINT NOT NULL DEFAULT 0",
    )

    @classmethod
    def _row_to_record(cls, row: dict | None) -> EntitlementRecord | None:
        if not row:
            return None

        return EntitlementRecord(
            user_id=str(row["user_id"]),
            vip_until=int(row.get("vip_until") or 0),
            trial_until=int(row.get("trial_until") or 0),
        )

    @classmethod
    async def ensure_schema(cls) -> None:
        """Create the table and apply additive column migrations."""
        try:
            for statement in cls.SCHEMA_STATEMENTS:
                await execute_query(statement)
        except DatabaseError as e:
            raise EntitlementRepositoryError(
                f"Failed to ensure vip_users schema: {e}", operation="ensure_schema", recoverable=False
            ) from e

        logger.info("vip_users schema ensured")

    @classmethod
    async def get(cls, user_id: str) -> EntitlementRecord | None:
        """Return the member's record, or None if never seen."""
        query = "SELECT user_id, vip_until, trial_until FROM vip_users WHERE user_id = %s"
        try:
            row = await fetch_one(query, (user_id,))
        except DatabaseError as e:
            raise EntitlementRepositoryError(str(e), operation="get") from e
        return cls._row_to_record(row)

    @classmethod
    async def upsert(cls, user_id: str, vip_until: int, trial_until: int) -> None:
        """Insert or replace the member's entitlement window."""
        query = """
            INSERT INTO vip_users (user_id, vip_until, trial_until)
            VALUES (%s, %s, %s)
            ON CONFLICT (user_id) DO UPDATE
            SET vip_until = EXCLUDED.vip_until,
                trial_until = EXCLUDED.trial_until
        """
        try:
            await execute_query(query, (user_id, vip_until, trial_until))
        except DatabaseError as e:
            raise EntitlementRepositoryError(str(e), operation="upsert") from e

        logger.debug(
            "Entitlement upserted", user_id=user_id, vip_until=vip_until, trial_until=trial_until
        )

    @classmethod
    async def list_all(cls) -> list[EntitlementRecord]:
        """Snapshot of every stored record."""
        query = "SELECT user_id, vip_until, trial_until FROM vip_users"
        try:
            rows = await fetch_all(query)
        except DatabaseError as e:
            raise EntitlementRepositoryError(str(e), operation="list_all") from e
        return [cls._row_to_record(row) for row in rows]
