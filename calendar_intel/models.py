"""Calendar and email records as returned by the platform API.

Only the fields the intelligence core reads are modelled; anything else in
the payload is ignored.  Timestamps are Unix seconds, timezones IANA ids.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class _Record(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class Participant(_Record):
    name: str = ""
    email: str = ""
    status: str = ""


class EventWhen(_Record):
    start_time: int = 0
    end_time: int = 0
    start_timezone: str = ""
    end_timezone: str = ""

    def start(self) -> datetime:
        """Start instant in the process-local timezone."""
        return datetime.fromtimestamp(self.start_time)

    def end(self) -> datetime:
        return datetime.fromtimestamp(self.end_time)


class Event(_Record):
    id: str = ""
    calendar_id: str = ""
    title: str = ""
    description: str = ""
    when: EventWhen = Field(default_factory=EventWhen)
    participants: list[Participant] = Field(default_factory=list)
    status: str = ""
    busy: bool = False
    read_only: bool = False
    recurrence: list[str] | None = None
    master_event_id: str = ""

    @property
    def duration_minutes(self) -> int:
        return max(0, (self.when.end_time - self.when.start_time) // 60)

    @property
    def is_recurring(self) -> bool:
        return bool(self.recurrence) or bool(self.master_event_id)


class Calendar(_Record):
    id: str
    name: str = ""
    is_primary: bool = False
    read_only: bool = False


class CreateEventRequest(_Record):
    title: str
    description: str = ""
    when: EventWhen
    busy: bool = True
    participants: list[Participant] = Field(default_factory=list)


class EmailParticipant(_Record):
    name: str = ""
    email: str = ""


class Message(_Record):
    id: str = ""
    thread_id: str = ""
    subject: str = ""
    sender: list[EmailParticipant] = Field(default_factory=list, alias="from")
    to: list[EmailParticipant] = Field(default_factory=list)
    body: str = ""
    snippet: str = ""
    date: int = 0
    unread: bool = False

    @property
    def sent_at(self) -> datetime:
        return datetime.fromtimestamp(self.date)


class Thread(_Record):
    id: str = ""
    subject: str = ""
    participants: list[EmailParticipant] = Field(default_factory=list)
