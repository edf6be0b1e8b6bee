import datetime
from typing import Annotated, Any, Optional

from pydantic import BaseModel, BeforeValidator, field_validator, model_validator

from campus_store.utils.formatters import parse_db_timestamp
from campus_store.utils.validators import coerce_datetime, coerce_optional_datetime

# Timestamps read back from the database are UTC text.
StoredTimestamp = Annotated[datetime.datetime, BeforeValidator(parse_db_timestamp)]

EVENT_DATE_FIELDS = ("date_time", "end_date_time")


class User(BaseModel):
    """Represents a user in the system."""

    id: int
    email: str
    name: Optional[str] = None
    created_at: StoredTimestamp


class Campus(BaseModel):
    """Represents a campus site."""

    id: int
    name: str
    location: Optional[str] = None
    description: Optional[str] = None
    created_at: StoredTimestamp


class Event(BaseModel):
    """Represents a program event held on a campus."""

    id: int
    campus_id: int
    title: str
    description: Optional[str] = None
    program_type: str
    date_time: StoredTimestamp
    end_date_time: Optional[StoredTimestamp] = None
    location: Optional[str] = None
    participant_count: Optional[int] = None
    rating: Optional[float] = None
    created_at: StoredTimestamp


class ChatSession(BaseModel):
    """Represents one chat exchange of a user."""

    id: int
    user_id: int
    message: str
    response: Optional[str] = None
    created_at: StoredTimestamp


class InsertUser(BaseModel):
    """Payload for registering a user."""

    email: str
    name: Optional[str] = None


class InsertCampus(BaseModel):
    """Payload for creating a campus."""

    name: str
    location: Optional[str] = None
    description: Optional[str] = None


class CampusUpdate(BaseModel):
    """Partial campus update. Only explicitly set fields are written."""

    name: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None


class InsertEvent(BaseModel):
    """Payload for creating an event.

    ``date_time`` and ``end_date_time`` accept datetimes, dates, ISO strings
    or epoch milliseconds and are coerced to aware datetimes.
    """

    campus_id: int
    title: str
    description: Optional[str] = None
    program_type: str
    date_time: datetime.datetime
    end_date_time: Optional[datetime.datetime] = None
    location: Optional[str] = None
    participant_count: Optional[int] = None
    rating: Optional[float] = None

    @field_validator("date_time", mode="before")
    @classmethod
    def coerce_start(cls, v: Any) -> datetime.datetime:
        return coerce_datetime(v)

    @field_validator("end_date_time", mode="before")
    @classmethod
    def coerce_end(cls, v: Any) -> Optional[datetime.datetime]:
        return coerce_optional_datetime(v)


class EventUpdate(BaseModel):
    """Partial event update. Only explicitly set fields are written.

    A blank date string leaves that column untouched; an explicit None clears it.
    """

    campus_id: Optional[int] = None
    title: Optional[str] = None
    description: Optional[str] = None
    program_type: Optional[str] = None
    date_time: Optional[datetime.datetime] = None
    end_date_time: Optional[datetime.datetime] = None
    location: Optional[str] = None
    participant_count: Optional[int] = None
    rating: Optional[float] = None

    @model_validator(mode="before")
    @classmethod
    def drop_blank_dates(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {
                key: value
                for key, value in data.items()
                if not (key in EVENT_DATE_FIELDS and isinstance(value, str) and not value.strip())
            }
        return data

    @field_validator("date_time", "end_date_time", mode="before")
    @classmethod
    def coerce_dates(cls, v: Any) -> Optional[datetime.datetime]:
        return coerce_optional_datetime(v)


class InsertChatSession(BaseModel):
    """Payload for recording a chat exchange."""

    user_id: int
    message: str
    response: Optional[str] = None
    created_at: Optional[datetime.datetime] = None

    @field_validator("created_at", mode="before")
    @classmethod
    def coerce_created_at(cls, v: Any) -> Optional[datetime.datetime]:
        return coerce_optional_datetime(v)


class EventTypeCount(BaseModel):
    """Number of events of one program type."""

    type: str
    count: int


class MonthlyParticipation(BaseModel):
    """Total participants of all events in one calendar month."""

    month: str
    participants: int
