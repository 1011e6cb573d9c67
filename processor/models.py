"""Data models for school schedule processing."""
from dataclasses import dataclass, field
from datetime import date
from typing import Optional


def _text(value) -> str:
    return '' if value is None else str(value)


@dataclass
class RawScheduleRecord:
    """One row of the NEIS SchoolSchedule API."""
    date: str
    event_name: str
    category: str = ''
    content: str = ''
    description: str = ''
    grade_scope: str = ''

    @classmethod
    def from_api_row(cls, row: dict) -> 'RawScheduleRecord':
        """
        Build a record from a raw API row.

        Args:
            row: Row dictionary as returned in ``SchoolSchedule[1].row``

        Returns:
            RawScheduleRecord with missing text fields set to '' and
            non-string values converted to text
        """
        return cls(
            date=_text(row.get('AA_YMD')).strip(),
            event_name=_text(row.get('EVENT_NM')).strip(),
            category=_text(row.get('SBTR_DD_SC_NM')),
            content=_text(row.get('EVENT_CNTNT') or row.get('CONTENT')),
            description=_text(row.get('DESCRIPTION')),
            grade_scope=_text(row.get('THREE_GRADE_EVENT_YN'))
        )


@dataclass(frozen=True)
class CalendarEventDescriptor:
    """All-day calendar entry ready for serialization."""
    start: date
    summary: str
    uid: str
    end: Optional[date] = None
    description: str = ''
    location: str = ''
    all_day: bool = True

    def __post_init__(self):
        if self.end is not None and self.end <= self.start:
            raise ValueError(
                f"Event end {self.end} must be after start {self.start}"
            )


@dataclass
class SyncResult:
    """Result of one calendar sync run."""
    records_fetched: int
    events_generated: int
    output_path: str
    saved: bool
    errors: list[str] = field(default_factory=list)
