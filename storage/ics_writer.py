"""iCalendar writer for school schedule events."""
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterable, Optional, Union

from icalendar import Calendar, Event, vDuration

from processor.models import CalendarEventDescriptor

logger = logging.getLogger(__name__)


class IcsCalendarWriter:
    """Serializes calendar event descriptors to an .ics document."""

    PRODID = '-//neis-calendar-sync//School Schedule//KO'
    DEFAULT_TIMEZONE = 'Asia/Seoul'
    DEFAULT_REFRESH = timedelta(hours=1)

    def __init__(
        self,
        calendar_name: str,
        timezone: str = DEFAULT_TIMEZONE,
        refresh_interval: timedelta = DEFAULT_REFRESH,
        dtstamp: Optional[datetime] = None
    ):
        """
        Initialize the writer.

        Args:
            calendar_name: Calendar display name, also used as event location
            timezone: Timezone advertised to calendar clients
            refresh_interval: Suggested polling interval for subscribers
            dtstamp: Fixed DTSTAMP for every event. Omitted when None so the
                same events always serialize to the same document.
        """
        self.calendar_name = calendar_name
        self.timezone = timezone
        self.refresh_interval = refresh_interval
        self.dtstamp = dtstamp

    def emit(self, descriptors: Iterable[CalendarEventDescriptor]) -> str:
        """
        Build the iCalendar document.

        Args:
            descriptors: Events in the order they should appear

        Returns:
            Serialized calendar as text
        """
        calendar = self._new_calendar()

        count = 0
        for descriptor in descriptors:
            calendar.add_component(self._to_vevent(descriptor))
            count += 1

        if count == 0:
            logger.warning("No events to write; emitting an empty calendar")
        else:
            logger.info(f"Built calendar with {count} events")

        return calendar.to_ical().decode('utf-8')

    def persist(self, document: str, path: Union[str, Path]) -> bool:
        """
        Write the document to disk.

        Args:
            document: Serialized calendar text
            path: Output file path; missing parent directories are created

        Returns:
            True if the file was written, False otherwise
        """
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, 'w', encoding='utf-8', newline='') as f:
                f.write(document)
        except OSError as e:
            logger.error(f"Failed to save calendar to {path}: {e}")
            return False

        logger.info(f"Calendar saved to {path}")
        return True

    def _new_calendar(self) -> Calendar:
        calendar = Calendar()
        calendar.add('prodid', self.PRODID)
        calendar.add('version', '2.0')
        calendar.add('calscale', 'GREGORIAN')
        calendar.add('method', 'PUBLISH')
        calendar.add('x-wr-calname', self.calendar_name)
        calendar.add('x-wr-timezone', self.timezone)
        calendar.add('x-published-ttl', vDuration(self.refresh_interval))
        calendar.add(
            'refresh-interval',
            vDuration(self.refresh_interval),
            parameters={'VALUE': 'DURATION'}
        )
        return calendar

    def _to_vevent(self, descriptor: CalendarEventDescriptor) -> Event:
        event = Event()
        event.add('uid', descriptor.uid)
        if self.dtstamp is not None:
            event.add('dtstamp', self.dtstamp)
        event.add('summary', descriptor.summary)
        # All-day events carry date-only values; DTEND is exclusive
        event.add('dtstart', descriptor.start)
        if descriptor.end is not None:
            event.add('dtend', descriptor.end)
        if descriptor.description:
            event.add('description', descriptor.description)
        event.add('location', descriptor.location or self.calendar_name)
        event.add('transp', 'TRANSPARENT')
        return event
