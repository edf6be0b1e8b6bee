"""Tests for the SQLite storage adapter CRUD operations."""

import datetime

import aiosqlite
import pytest
from pydantic import ValidationError

from campus_store.config import DatabaseSettings
from campus_store.db import Storage, open_pool
from campus_store.db.models import CampusUpdate, EventUpdate, InsertEvent, InsertUser

# Mark all async functions in this module as asyncio tests
pytestmark = pytest.mark.asyncio

UTC = datetime.timezone.utc


# region Users


async def test_create_and_get_user(storage):
    created = await storage.create_user(InsertUser(email="ada@example.edu", name="Ada"))

    assert created.id > 0
    assert created.created_at.tzinfo is not None
    assert await storage.get_user(created.id) == created
    assert await storage.get_user_by_email("ada@example.edu") == created


async def test_missing_user_is_none(storage):
    assert await storage.get_user(999) is None
    assert await storage.get_user_by_email("nobody@example.edu") is None


async def test_duplicate_email_propagates_integrity_error(storage, user):
    with pytest.raises(aiosqlite.IntegrityError):
        await storage.create_user({"email": user.email})


async def test_failed_write_does_not_lock_file_database(tmp_path):
    pool = await open_pool(DatabaseSettings(url=str(tmp_path / "campus.db"), pool_size=2, pool_timeout=1))
    file_storage = Storage(pool)
    try:
        await file_storage.create_user({"email": "a@x.edu"})
        with pytest.raises(aiosqlite.IntegrityError):
            await file_storage.create_user({"email": "a@x.edu"})

        campus = await file_storage.create_campus({"name": "After failure"})

        assert await file_storage.get_campus(campus.id) == campus
    finally:
        await pool.close()


# endregion

# region Campuses


async def test_get_campus_roundtrip(storage, campus):
    fetched = await storage.get_campus(campus.id)

    assert fetched == campus
    assert fetched.name == "North Campus"
    assert await storage.get_campus(campus.id + 100) is None


async def test_all_campuses_sorted_by_name(storage):
    for name in ["Westfield", "Alder", "Maple Grove", "Cedar"]:
        await storage.create_campus({"name": name})

    campuses = await storage.get_all_campuses()

    assert [c.name for c in campuses] == ["Alder", "Cedar", "Maple Grove", "Westfield"]


async def test_create_campus_with_empty_name_is_stored_as_given(storage):
    created = await storage.create_campus({"name": ""})

    assert created.name == ""
    assert await storage.get_campus(created.id) == created


async def test_update_campus_changes_only_supplied_fields(storage):
    created = await storage.create_campus(
        {"name": "South", "location": "Riverside", "description": "Arts and music"}
    )

    updated = await storage.update_campus(created.id, {"name": "South Bank"})

    assert updated.name == "South Bank"
    assert updated.location == "Riverside"
    assert updated.description == "Arts and music"
    assert updated.created_at == created.created_at


async def test_update_campus_explicit_none_clears_field(storage, campus):
    updated = await storage.update_campus(campus.id, CampusUpdate(location=None))

    assert updated.location is None
    assert updated.name == campus.name


async def test_update_missing_campus_returns_none(storage):
    assert await storage.update_campus(404, {"name": "Ghost"}) is None


async def test_update_campus_with_empty_payload_returns_current_row(storage, campus):
    assert await storage.update_campus(campus.id, {}) == campus
    assert await storage.update_campus(404, {}) is None


# endregion

# region Events


async def test_create_event_coerces_dates_and_nulls_missing_end(storage, event_data):
    event = await storage.create_event(event_data(date_time="2024-03-15T12:00:00Z"))

    assert event.date_time == datetime.datetime(2024, 3, 15, 12, 0, tzinfo=UTC)
    assert event.end_date_time is None
    assert event.participant_count is None
    assert event.rating is None
    assert await storage.get_event(event.id) == event


async def test_create_event_accepts_epoch_milliseconds(storage, event_data):
    start = datetime.datetime(2024, 5, 1, 9, 30, tzinfo=UTC)
    end = start + datetime.timedelta(hours=2)

    event = await storage.create_event(
        event_data(date_time=int(start.timestamp() * 1000), end_date_time=end)
    )

    assert event.date_time == start
    assert event.end_date_time == end


async def test_create_event_empty_end_is_null(storage, event_data):
    event = await storage.create_event(InsertEvent(**event_data(end_date_time="")))

    assert event.end_date_time is None


async def test_create_event_date_only_string_is_utc_midnight(storage, event_data):
    event = await storage.create_event(event_data(date_time="2024-03-15"))

    assert event.date_time == datetime.datetime(2024, 3, 15, 0, 0, tzinfo=UTC)


async def test_create_event_with_unparsable_date_raises(storage, event_data):
    with pytest.raises(ValidationError):
        await storage.create_event(event_data(date_time="next tuesday"))


async def test_create_event_for_unknown_campus_raises(storage, event_data):
    with pytest.raises(aiosqlite.IntegrityError):
        await storage.create_event(event_data(campus_id=12345))


async def test_events_by_campus_most_recent_first(storage, campus, event_data):
    for day in (3, 20, 11):
        await storage.create_event(event_data(date_time=f"2024-04-{day:02d}T10:00:00Z"))
    other = await storage.create_campus({"name": "Elsewhere"})
    await storage.create_event(event_data(campus_id=other.id))

    events = await storage.get_events_by_campus(campus.id)

    assert [e.date_time.day for e in events] == [20, 11, 3]
    assert all(e.campus_id == campus.id for e in events)


async def test_events_in_date_range_is_inclusive_and_ascending(storage, campus, event_data):
    for hour in (15, 9, 12):
        await storage.create_event(
            event_data(title=f"{hour}:00", date_time=f"2024-06-01T{hour:02d}:00:00Z")
        )

    events = await storage.get_events_in_date_range(
        campus.id, "2024-06-01T10:00:00Z", datetime.datetime(2024, 6, 1, 15, 0, tzinfo=UTC)
    )

    assert [e.title for e in events] == ["12:00", "15:00"]


async def test_events_in_date_range_includes_start_bound(storage, campus, event_data):
    for hour in (9, 10, 11):
        await storage.create_event(
            event_data(title=f"{hour}:00", date_time=f"2024-06-01T{hour:02d}:00:00Z")
        )

    events = await storage.get_events_in_date_range(campus.id, "2024-06-01T10:00:00Z", "2024-06-01T10:30:00Z")

    assert [e.title for e in events] == ["10:00"]


async def test_events_in_date_range_with_local_time_bounds(storage, campus, event_data):
    await storage.create_event(event_data(date_time="2024-06-01T08:00:00"))
    await storage.create_event(event_data(date_time="2024-06-02T08:00:00"))

    events = await storage.get_events_in_date_range(campus.id, "2024-06-01T00:00:00", "2024-06-01T23:59:59")

    assert len(events) == 1
    assert events[0].date_time.astimezone().day == 1


async def test_update_event_partial_with_date_coercion(storage, event_data):
    created = await storage.create_event(
        event_data(end_date_time="2024-03-15T14:00:00Z", participant_count=12, rating=4.5)
    )

    updated = await storage.update_event(created.id, {"date_time": "2024-03-16T12:00:00Z"})

    assert updated.date_time == datetime.datetime(2024, 3, 16, 12, 0, tzinfo=UTC)
    assert updated.end_date_time == created.end_date_time
    assert updated.participant_count == 12
    assert updated.rating == 4.5
    assert updated.title == created.title


async def test_update_event_explicit_none_clears_end(storage, event_data):
    created = await storage.create_event(event_data(end_date_time="2024-03-15T14:00:00Z"))

    updated = await storage.update_event(created.id, EventUpdate(end_date_time=None))

    assert updated.end_date_time is None
    assert updated.date_time == created.date_time


async def test_update_event_blank_date_leaves_column_untouched(storage, event_data):
    created = await storage.create_event(event_data(end_date_time="2024-03-15T14:00:00Z"))

    updated = await storage.update_event(created.id, {"end_date_time": "", "title": "Renamed"})

    assert updated.end_date_time == created.end_date_time
    assert updated.title == "Renamed"


async def test_update_missing_event_returns_none(storage):
    assert await storage.update_event(777, {"title": "Nothing"}) is None


async def test_delete_event_true_exactly_once(storage, event_data):
    event = await storage.create_event(event_data())

    assert await storage.delete_event(event.id) is True
    assert await storage.delete_event(event.id) is False
    assert await storage.get_event(event.id) is None
    assert await storage.delete_event(4242) is False


# endregion

# region Chat


async def test_chat_history_newest_first_and_limited(storage, user):
    base = datetime.datetime(2024, 1, 1, 8, 0, tzinfo=UTC)
    for i in range(5):
        await storage.create_chat_session(
            {"user_id": user.id, "message": f"question {i}", "created_at": base + datetime.timedelta(minutes=i)}
        )

    history = await storage.get_chat_history(user.id, 2)

    assert [s.message for s in history] == ["question 4", "question 3"]


async def test_chat_history_default_limit_is_ten(storage, user):
    for i in range(12):
        await storage.create_chat_session({"user_id": user.id, "message": f"hello {i}"})

    history = await storage.get_chat_history(user.id)

    assert len(history) == 10
    assert history[0].message == "hello 11"


async def test_chat_history_only_for_user(storage, user):
    other = await storage.create_user({"email": "other@example.edu"})
    await storage.create_chat_session({"user_id": other.id, "message": "not yours"})

    assert await storage.get_chat_history(user.id) == []


async def test_create_chat_session_defaults_created_at(storage, user):
    session = await storage.create_chat_session({"user_id": user.id, "message": "hi", "response": "hello"})

    assert session.response == "hello"
    assert session.created_at.tzinfo is not None


# endregion
