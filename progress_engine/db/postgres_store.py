"""
PostgreSQL store

Progress updates run in one transaction that locks the progress row with
SELECT ... FOR UPDATE under a transaction-local lock_timeout. When the
completion being applied is given, its session row is locked first and
stamped in the same transaction. Lock order is always session row, then
progress row.
"""

import json
import logging
from datetime import datetime
from typing import Any, Iterable, Optional

import psycopg
from psycopg import errors
from psycopg.types.json import Jsonb

from progress_engine import config
from progress_engine.db.connection import Database, db as default_db
from progress_engine.db.store import ProgressMutator, SessionAlreadyScored, StoreConflict
from progress_engine.exceptions import wrap_external_exception
from progress_engine.models.analytics import AnalyticsEvent
from progress_engine.models.catalog import ActivityKind, AppDefinition
from progress_engine.models.progress import ProgressKey, ProgressSummary
from progress_engine.models.session import Session, SessionStatus
from progress_engine.monitoring import track_database_query

logger = logging.getLogger(__name__)

APP_COLUMNS = """
    id, app_type, name, description, difficulty_level, estimated_duration,
    evidence_based, max_score, popularity_score, clinical_rating, is_active, tags
"""

SESSION_COLUMNS = """
    id, app_id, user_id, session_type, status, started_at, completed_at,
    duration_seconds, score, max_score, responses, interaction_data, scored_at
"""

PROGRESS_COLUMNS = """
    app_id, user_id, total_sessions, total_time_minutes, best_score, score_total,
    average_score, current_level, experience_points, achievements, streak_days,
    last_played_at, mastery_level, version, created_at, updated_at
"""

# Errors meaning "someone else holds the row": the whole update can be retried
CONFLICT_ERRORS = (errors.LockNotAvailable, errors.SerializationFailure, errors.DeadlockDetected)


def _row_to_app(row: dict) -> AppDefinition:
    data = dict(row)
    data["tags"] = list(data.get("tags") or [])
    data["popularity_score"] = float(data["popularity_score"])
    data["clinical_rating"] = float(data["clinical_rating"])
    return AppDefinition(**data)


def _row_to_session(row: dict) -> Session:
    return Session(**row)


def _row_to_progress(row: dict) -> ProgressSummary:
    data = dict(row)
    achievements = data.get("achievements") or []
    if isinstance(achievements, str):
        achievements = json.loads(achievements)
    data["achievements"] = list(achievements)
    data["average_score"] = float(data["average_score"])
    return ProgressSummary(**data)


def _session_value(column: str, value: Any) -> Any:
    if column in ("responses", "interaction_data"):
        return Jsonb(value)
    if isinstance(value, SessionStatus):
        return value.value
    return value


class PostgresStore:
    """ProgressStore backed by PostgreSQL (see migrations/001_gamified_progress.sql)"""

    def __init__(self, database: Optional[Database] = None, lock_timeout_ms: Optional[int] = None):
        self.db = database or default_db
        self.lock_timeout_ms = lock_timeout_ms if lock_timeout_ms is not None else config.PROGRESS_LOCK_TIMEOUT_MS

    # ------------------------------------------
    # Catalog
    # ------------------------------------------

    async def get_app(self, app_id: str) -> Optional[AppDefinition]:
        try:
            with track_database_query("SELECT", "gamified_apps"):
                async with self.db.connection() as conn:
                    async with conn.cursor() as cur:
                        await cur.execute(
                            f"SELECT {APP_COLUMNS} FROM gamified_apps WHERE id = %s",
                            (app_id,)
                        )
                        row = await cur.fetchone()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="get_app", context={"app_id": app_id})
        return _row_to_app(row) if row else None

    async def list_apps(self, app_type: Optional[ActivityKind] = None) -> list[AppDefinition]:
        query = f"SELECT {APP_COLUMNS} FROM gamified_apps WHERE is_active = true"
        params: tuple = ()
        if app_type is not None:
            query += " AND app_type = %s"
            params = (ActivityKind(app_type).value,)
        query += " ORDER BY catalog_position"

        try:
            with track_database_query("SELECT", "gamified_apps"):
                async with self.db.connection() as conn:
                    async with conn.cursor() as cur:
                        await cur.execute(query, params)
                        rows = await cur.fetchall()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="list_apps")
        return [_row_to_app(row) for row in rows]

    async def list_uncompleted_apps(self, user_id: str) -> list[AppDefinition]:
        # Single statement, single snapshot
        try:
            with track_database_query("SELECT", "gamified_apps"):
                async with self.db.connection() as conn:
                    async with conn.cursor() as cur:
                        await cur.execute(
                            f"""
                            SELECT {APP_COLUMNS}
                            FROM gamified_apps ga
                            WHERE ga.is_active = true
                            AND NOT EXISTS (
                                SELECT 1 FROM app_sessions s
                                WHERE s.app_id = ga.id
                                AND s.user_id = %s
                                AND s.status = 'completed'
                            )
                            ORDER BY ga.catalog_position
                            """,
                            (user_id,)
                        )
                        rows = await cur.fetchall()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="list_uncompleted_apps", user_id=user_id)
        return [_row_to_app(row) for row in rows]

    # ------------------------------------------
    # Sessions
    # ------------------------------------------

    async def create_session(self, session: Session) -> Session:
        try:
            with track_database_query("INSERT", "app_sessions"):
                async with self.db.connection() as conn:
                    async with conn.cursor() as cur:
                        await cur.execute(
                            f"""
                            INSERT INTO app_sessions (
                                id, app_id, user_id, session_type, status, started_at,
                                max_score, responses, interaction_data
                            )
                            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                            RETURNING {SESSION_COLUMNS}
                            """,
                            (
                                session.id,
                                session.app_id,
                                session.user_id,
                                session.session_type.value,
                                session.status.value,
                                session.started_at,
                                session.max_score,
                                Jsonb(session.responses),
                                Jsonb(session.interaction_data),
                            )
                        )
                        row = await cur.fetchone()
                        await conn.commit()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="create_session", user_id=session.user_id)
        return _row_to_session(row)

    async def get_session(self, session_id: str) -> Optional[Session]:
        try:
            with track_database_query("SELECT", "app_sessions"):
                async with self.db.connection() as conn:
                    async with conn.cursor() as cur:
                        await cur.execute(
                            f"SELECT {SESSION_COLUMNS} FROM app_sessions WHERE id = %s",
                            (session_id,)
                        )
                        row = await cur.fetchone()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="get_session", context={"session_id": session_id})
        return _row_to_session(row) if row else None

    async def transition_session(
        self,
        session_id: str,
        expected: Iterable[SessionStatus],
        **changes
    ) -> Optional[Session]:
        columns = list(changes)
        assignments = ", ".join(f"{column} = %s" for column in columns)
        params = [_session_value(column, changes[column]) for column in columns]
        expected_values = [SessionStatus(status).value for status in expected]

        try:
            with track_database_query("UPDATE", "app_sessions"):
                async with self.db.connection() as conn:
                    async with conn.cursor() as cur:
                        await cur.execute(
                            f"""
                            UPDATE app_sessions
                            SET {assignments}
                            WHERE id = %s AND status = ANY(%s)
                            RETURNING {SESSION_COLUMNS}
                            """,
                            (*params, session_id, expected_values)
                        )
                        row = await cur.fetchone()
                        await conn.commit()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="transition_session", context={"session_id": session_id})
        return _row_to_session(row) if row else None

    # ------------------------------------------
    # Progress
    # ------------------------------------------

    async def ensure_progress(self, key: ProgressKey, now: datetime) -> ProgressSummary:
        try:
            with track_database_query("INSERT", "app_progress"):
                async with self.db.connection() as conn:
                    async with conn.cursor() as cur:
                        await cur.execute(
                            """
                            INSERT INTO app_progress (app_id, user_id, created_at, updated_at)
                            VALUES (%s, %s, %s, %s)
                            ON CONFLICT (app_id, user_id) DO NOTHING
                            """,
                            (key.app_id, key.user_id, now, now)
                        )
                        if cur.rowcount:
                            logger.info(f"Created progress record for app {key.app_id}, user {key.user_id}")
                        await cur.execute(
                            f"SELECT {PROGRESS_COLUMNS} FROM app_progress WHERE app_id = %s AND user_id = %s",
                            (key.app_id, key.user_id)
                        )
                        row = await cur.fetchone()
                        await conn.commit()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="ensure_progress", user_id=key.user_id)
        return _row_to_progress(row)

    async def get_progress(self, key: ProgressKey) -> Optional[ProgressSummary]:
        try:
            with track_database_query("SELECT", "app_progress"):
                async with self.db.connection() as conn:
                    async with conn.cursor() as cur:
                        await cur.execute(
                            f"SELECT {PROGRESS_COLUMNS} FROM app_progress WHERE app_id = %s AND user_id = %s",
                            (key.app_id, key.user_id)
                        )
                        row = await cur.fetchone()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="get_progress", user_id=key.user_id)
        return _row_to_progress(row) if row else None

    async def update_progress(
        self,
        key: ProgressKey,
        mutate: ProgressMutator,
        now: datetime,
        scored_session_id: Optional[str] = None
    ) -> ProgressSummary:
        try:
            with track_database_query("UPDATE", "app_progress"):
                async with self.db.connection() as conn:
                    async with conn.transaction():
                        async with conn.cursor() as cur:
                            await cur.execute(
                                "SELECT set_config('lock_timeout', %s, true)",
                                (f"{int(self.lock_timeout_ms)}ms",)
                            )

                            if scored_session_id is not None:
                                await cur.execute(
                                    "SELECT scored_at FROM app_sessions WHERE id = %s FOR UPDATE",
                                    (scored_session_id,)
                                )
                                session_row = await cur.fetchone()
                                if session_row is None:
                                    raise LookupError(f"Session {scored_session_id} does not exist")
                                if session_row["scored_at"] is not None:
                                    raise SessionAlreadyScored(scored_session_id)

                            await cur.execute(
                                """
                                INSERT INTO app_progress (app_id, user_id, created_at, updated_at)
                                VALUES (%s, %s, %s, %s)
                                ON CONFLICT (app_id, user_id) DO NOTHING
                                """,
                                (key.app_id, key.user_id, now, now)
                            )
                            await cur.execute(
                                f"""
                                SELECT {PROGRESS_COLUMNS} FROM app_progress
                                WHERE app_id = %s AND user_id = %s
                                FOR UPDATE
                                """,
                                (key.app_id, key.user_id)
                            )
                            current = _row_to_progress(await cur.fetchone())
                            updated = mutate(current.model_copy(deep=True))

                            await cur.execute(
                                f"""
                                UPDATE app_progress
                                SET total_sessions = %s,
                                    total_time_minutes = %s,
                                    best_score = %s,
                                    score_total = %s,
                                    average_score = %s,
                                    current_level = %s,
                                    experience_points = %s,
                                    achievements = %s,
                                    streak_days = %s,
                                    last_played_at = %s,
                                    mastery_level = %s,
                                    version = version + 1,
                                    updated_at = %s
                                WHERE app_id = %s AND user_id = %s AND version = %s
                                RETURNING {PROGRESS_COLUMNS}
                                """,
                                (
                                    updated.total_sessions,
                                    updated.total_time_minutes,
                                    updated.best_score,
                                    updated.score_total,
                                    updated.average_score,
                                    updated.current_level,
                                    updated.experience_points,
                                    Jsonb(updated.achievements),
                                    updated.streak_days,
                                    updated.last_played_at,
                                    updated.mastery_level.value,
                                    now,
                                    key.app_id,
                                    key.user_id,
                                    current.version,
                                )
                            )
                            row = await cur.fetchone()
                            if row is None:
                                # Row lock held, so the version cannot have moved; treat as conflict anyway
                                raise StoreConflict(f"Progress {key} changed during update")

                            if scored_session_id is not None:
                                await cur.execute(
                                    "UPDATE app_sessions SET scored_at = %s WHERE id = %s",
                                    (now, scored_session_id)
                                )
        except CONFLICT_ERRORS as e:
            raise StoreConflict(f"Could not lock progress {key}: {e}") from e
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="update_progress", user_id=key.user_id)

        return _row_to_progress(row)

    async def list_user_progress(self, user_id: str, app_id: Optional[str] = None) -> list[ProgressSummary]:
        query = f"SELECT {PROGRESS_COLUMNS} FROM app_progress WHERE user_id = %s"
        params: tuple = (user_id,)
        if app_id is not None:
            query += " AND app_id = %s"
            params = (user_id, app_id)
        query += " ORDER BY created_at"

        try:
            with track_database_query("SELECT", "app_progress"):
                async with self.db.connection() as conn:
                    async with conn.cursor() as cur:
                        await cur.execute(query, params)
                        rows = await cur.fetchall()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="list_user_progress", user_id=user_id)
        return [_row_to_progress(row) for row in rows]

    async def list_app_progress(self, app_id: str) -> list[ProgressSummary]:
        try:
            with track_database_query("SELECT", "app_progress"):
                async with self.db.connection() as conn:
                    async with conn.cursor() as cur:
                        await cur.execute(
                            f"""
                            SELECT {PROGRESS_COLUMNS} FROM app_progress
                            WHERE app_id = %s
                            ORDER BY best_score DESC, experience_points DESC, user_id ASC
                            """,
                            (app_id,)
                        )
                        rows = await cur.fetchall()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="list_app_progress", context={"app_id": app_id})
        return [_row_to_progress(row) for row in rows]

    # ------------------------------------------
    # Analytics
    # ------------------------------------------

    async def record_event(self, event: AnalyticsEvent) -> None:
        try:
            with track_database_query("INSERT", "app_analytics"):
                async with self.db.connection() as conn:
                    async with conn.cursor() as cur:
                        await cur.execute(
                            """
                            INSERT INTO app_analytics (session_id, event_type, event_data, user_id, app_id, timestamp)
                            VALUES (%s, %s, %s, %s, %s, %s)
                            """,
                            (
                                event.session_id,
                                event.event_type,
                                Jsonb(event.event_data),
                                event.user_id,
                                event.app_id,
                                event.timestamp,
                            )
                        )
                        await conn.commit()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="record_event", user_id=event.user_id)

    # ------------------------------------------
    # Lifecycle
    # ------------------------------------------

    async def open(self) -> None:
        await self.db.init_pool()

    async def close(self) -> None:
        await self.db.close_pool()

    async def ping(self) -> bool:
        try:
            async with self.db.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute("SELECT 1")
                    await cur.fetchone()
            return True
        except (psycopg.Error, RuntimeError) as e:
            logger.error(f"Database health check failed: {e}")
            return False
