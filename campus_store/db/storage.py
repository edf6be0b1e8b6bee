"""SQLite storage adapter for users, campuses, events and chat sessions."""

from __future__ import annotations

import datetime
import logging
from typing import Any, Dict, List, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel

from campus_store.utils.formatters import format_db_timestamp, format_month_name, parse_db_timestamp
from campus_store.utils.validators import coerce_datetime

from .connection import ConnectionPool
from .models import (
    Campus,
    CampusUpdate,
    ChatSession,
    Event,
    EventTypeCount,
    EventUpdate,
    InsertCampus,
    InsertChatSession,
    InsertEvent,
    InsertUser,
    MonthlyParticipation,
    User,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)
DateLike = Union[datetime.datetime, datetime.date, str, int, float]


def _payload(model: Type[ModelT], data: Union[ModelT, Mapping[str, Any]]) -> ModelT:
    if isinstance(data, model):
        return data
    return model.model_validate(data)


def _to_db(values: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: format_db_timestamp(value) if isinstance(value, datetime.datetime) else value
        for key, value in values.items()
    }


class Storage:
    """Typed async facade over the campus database.

    Single-row lookups return None when nothing matches. Database errors,
    including constraint violations, propagate to the caller unchanged.
    """

    def __init__(self, pool: ConnectionPool):
        self.pool = pool

    async def _fetch_one(self, model: Type[ModelT], sql: str, params: tuple = ()) -> Optional[ModelT]:
        async with self.pool.connection() as conn:
            rows = list(await conn.execute_fetchall(sql, params))
        return model(**dict(rows[0])) if rows else None

    async def _fetch_all(self, model: Type[ModelT], sql: str, params: tuple = ()) -> List[ModelT]:
        async with self.pool.connection() as conn:
            rows = await conn.execute_fetchall(sql, params)
        return [model(**dict(row)) for row in rows]

    async def _insert(self, table: str, model: Type[ModelT], values: Dict[str, Any]) -> ModelT:
        values = _to_db(values)
        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        async with self.pool.connection() as conn:
            rows = list(
                await conn.execute_fetchall(
                    f"INSERT INTO {table} ({columns}) VALUES ({placeholders}) RETURNING *",
                    tuple(values.values()),
                )
            )
            await conn.commit()
        record = model(**dict(rows[0]))
        logger.debug("Inserted %s row id=%s", table, getattr(record, "id", None))
        return record

    async def _update(self, table: str, model: Type[ModelT], row_id: int, values: Dict[str, Any]) -> Optional[ModelT]:
        if not values:
            return await self._fetch_one(model, f"SELECT * FROM {table} WHERE id = ?", (row_id,))
        values = _to_db(values)
        assignments = ", ".join(f"{column} = ?" for column in values)
        async with self.pool.connection() as conn:
            rows = list(
                await conn.execute_fetchall(
                    f"UPDATE {table} SET {assignments} WHERE id = ? RETURNING *",
                    (*values.values(), row_id),
                )
            )
            await conn.commit()
        if not rows:
            return None
        logger.debug("Updated %s row id=%d fields=%s", table, row_id, ",".join(values))
        return model(**dict(rows[0]))

    # User operations

    async def get_user(self, user_id: int) -> Optional[User]:
        """Retrieve a user by their ID."""
        return await self._fetch_one(User, "SELECT * FROM users WHERE id = ? LIMIT 1", (user_id,))

    async def get_user_by_email(self, email: str) -> Optional[User]:
        """Retrieve a user by their email address."""
        return await self._fetch_one(User, "SELECT * FROM users WHERE email = ? LIMIT 1", (email,))

    async def create_user(self, data: Union[InsertUser, Mapping[str, Any]]) -> User:
        """Insert a user. A duplicate email raises aiosqlite.IntegrityError."""
        payload = _payload(InsertUser, data)
        return await self._insert("users", User, payload.model_dump(exclude_unset=True))

    # Campus operations

    async def get_campus(self, campus_id: int) -> Optional[Campus]:
        return await self._fetch_one(Campus, "SELECT * FROM campuses WHERE id = ? LIMIT 1", (campus_id,))

    async def get_all_campuses(self) -> List[Campus]:
        """List every campus ordered by name."""
        return await self._fetch_all(Campus, "SELECT * FROM campuses ORDER BY name ASC")

    async def create_campus(self, data: Union[InsertCampus, Mapping[str, Any]]) -> Campus:
        payload = _payload(InsertCampus, data)
        return await self._insert("campuses", Campus, payload.model_dump(exclude_unset=True))

    async def update_campus(
        self, campus_id: int, updates: Union[CampusUpdate, Mapping[str, Any]]
    ) -> Optional[Campus]:
        """Apply only the supplied fields. Returns None if the campus does not exist."""
        payload = _payload(CampusUpdate, updates)
        return await self._update("campuses", Campus, campus_id, payload.model_dump(exclude_unset=True))

    # Event operations

    async def get_event(self, event_id: int) -> Optional[Event]:
        return await self._fetch_one(Event, "SELECT * FROM events WHERE id = ? LIMIT 1", (event_id,))

    async def get_events_by_campus(self, campus_id: int) -> List[Event]:
        """List a campus's events, most recent first."""
        return await self._fetch_all(
            Event,
            """
            SELECT * FROM events
            WHERE campus_id = ?
            ORDER BY date_time DESC
            """,
            (campus_id,),
        )

    async def get_events_in_date_range(self, campus_id: int, start: DateLike, end: DateLike) -> List[Event]:
        """List a campus's events with start <= date_time <= end, oldest first."""
        return await self._fetch_all(
            Event,
            """
            SELECT * FROM events
            WHERE campus_id = ?
              AND date_time >= ?
              AND date_time <= ?
            ORDER BY date_time ASC
            """,
            (
                campus_id,
                format_db_timestamp(coerce_datetime(start)),
                format_db_timestamp(coerce_datetime(end)),
            ),
        )

    async def create_event(self, data: Union[InsertEvent, Mapping[str, Any]]) -> Event:
        """Insert an event. Dates are coerced and a missing end time is stored as NULL."""
        payload = _payload(InsertEvent, data)
        values = payload.model_dump(exclude_unset=True)
        values["end_date_time"] = payload.end_date_time
        return await self._insert("events", Event, values)

    async def update_event(self, event_id: int, updates: Union[EventUpdate, Mapping[str, Any]]) -> Optional[Event]:
        """Apply only the supplied fields. Returns None if the event does not exist."""
        payload = _payload(EventUpdate, updates)
        return await self._update("events", Event, event_id, payload.model_dump(exclude_unset=True))

    async def delete_event(self, event_id: int) -> bool:
        """Delete an event. Returns True if a row was removed."""
        async with self.pool.connection() as conn:
            cursor = await conn.execute("DELETE FROM events WHERE id = ?", (event_id,))
            deleted = cursor.rowcount
            await conn.commit()
        logger.debug("Deleted %d event row(s) for id=%d", deleted, event_id)
        return deleted > 0

    # Chat operations

    async def create_chat_session(self, data: Union[InsertChatSession, Mapping[str, Any]]) -> ChatSession:
        payload = _payload(InsertChatSession, data)
        return await self._insert("chat_sessions", ChatSession, payload.model_dump(exclude_none=True))

    async def get_chat_history(self, user_id: int, limit: int = 10) -> List[ChatSession]:
        """Return a user's most recent chat sessions, newest first."""
        return await self._fetch_all(
            ChatSession,
            """
            SELECT * FROM chat_sessions
            WHERE user_id = ?
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            (user_id, limit),
        )

    # Analytics

    async def get_event_type_distribution(self, campus_id: int) -> List[EventTypeCount]:
        """Count a campus's events per program type."""
        async with self.pool.connection() as conn:
            rows = await conn.execute_fetchall(
                """
                SELECT program_type AS type, COUNT(*) AS count
                FROM events
                WHERE campus_id = ?
                GROUP BY program_type
                """,
                (campus_id,),
            )
        return [EventTypeCount(type=row["type"], count=int(row["count"])) for row in rows]

    async def get_monthly_participation(self, campus_id: int, year: int) -> List[MonthlyParticipation]:
        """
        Sum participants per local calendar month of *year*.
        Events without a participant count contribute 0; months without
        events are left out.
        """
        async with self.pool.connection() as conn:
            rows = await conn.execute_fetchall(
                """
                SELECT date_time, participant_count
                FROM events
                WHERE campus_id = ?
                ORDER BY date_time ASC
                """,
                (campus_id,),
            )

        totals: Dict[str, int] = {}
        for row in rows:
            local = parse_db_timestamp(row["date_time"]).astimezone()
            if local.year != year:
                continue
            month = format_month_name(local.month)
            totals[month] = totals.get(month, 0) + (row["participant_count"] or 0)

        return [MonthlyParticipation(month=month, participants=total) for month, total in totals.items()]

    async def get_top_rated_events(self, campus_id: int, limit: int = 5) -> List[Event]:
        """Return a campus's best rated events. Unrated events sort last."""
        return await self._fetch_all(
            Event,
            """
            SELECT * FROM events
            WHERE campus_id = ?
            ORDER BY rating IS NULL, rating DESC
            LIMIT ?
            """,
            (campus_id, limit),
        )
