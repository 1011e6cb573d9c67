"""Transformer turning NEIS schedule rows into calendar event descriptors."""
import hashlib
import logging
import re
from collections import OrderedDict
from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from processor.category_rules import (
    CATEGORY_RULES,
    EXCLUDED_EVENT_NAMES,
    PUBLIC_HOLIDAY_MARKER,
    RECURRING_MARKERS,
    classify,
)
from processor.models import CalendarEventDescriptor, RawScheduleRecord

logger = logging.getLogger(__name__)

DATE_PATTERN = re.compile(r'\d{8}')
MIN_RECURRING_DAYS = 3


class ScheduleTransformer:
    """Filter, group and merge schedule records into calendar events."""

    def __init__(
        self,
        location: str = '',
        source: str = 'neis',
        excluded_names: Iterable[str] = EXCLUDED_EVENT_NAMES,
        category_rules: Sequence[Tuple[str, str]] = CATEGORY_RULES,
        recurring_markers: Sequence[str] = RECURRING_MARKERS,
        exclude_public_holidays: bool = False,
        annotate_grade_scope: bool = False
    ):
        """
        Initialize the transformer.

        Args:
            location: Location written on every event (the school name)
            source: Prefix used when building event identifiers
            excluded_names: Event names that are dropped entirely
            category_rules: Ordered (substring, category) pairs deciding
                whether same-day events may be merged
            recurring_markers: Event names collapsed into one span when
                they cover at least three days
            exclude_public_holidays: Also drop rows whose day type is a
                public holiday
            annotate_grade_scope: Append the grade-scope flag to summaries
        """
        self.location = location
        self.source = source
        self.excluded_names = frozenset(excluded_names)
        self.category_rules = tuple(category_rules)
        self.recurring_markers = tuple(recurring_markers)
        self.exclude_public_holidays = exclude_public_holidays
        self.annotate_grade_scope = annotate_grade_scope

    def transform(
        self,
        records: Iterable[RawScheduleRecord]
    ) -> List[CalendarEventDescriptor]:
        """
        Transform schedule records into calendar event descriptors.

        Args:
            records: Raw records from the schedule API

        Returns:
            Descriptors for per-date events in date order, followed by
            one descriptor per detected recurring span
        """
        records = list(records)
        kept = [
            record for record in records
            if not self._is_excluded(record) and self._has_valid_date(record)
        ]
        kept.sort(key=lambda record: record.date)

        spans, absorbed = self._detect_recurring_spans(kept)

        descriptors = []
        for day, bucket in self._group_by_date(kept).items():
            # Days inside a span are represented by the span alone
            if day not in absorbed:
                descriptors.extend(self._descriptors_for_date(day, bucket))

        descriptors.extend(spans)

        logger.info(
            f"Generated {len(descriptors)} calendar events from "
            f"{len(records)} schedule records "
            f"({len(records) - len(kept)} filtered, {len(spans)} spans)"
        )
        return descriptors

    def _is_excluded(self, record: RawScheduleRecord) -> bool:
        if record.event_name in self.excluded_names:
            return True
        if self.exclude_public_holidays and PUBLIC_HOLIDAY_MARKER in record.category:
            return True
        return False

    def _has_valid_date(self, record: RawScheduleRecord) -> bool:
        if self.parse_date(record.date) is None:
            logger.warning(
                f"Skipping event '{record.event_name}' with invalid date: "
                f"{record.date!r}"
            )
            return False
        return True

    @staticmethod
    def parse_date(date_str: str) -> Optional[date]:
        """
        Parse an 8-digit YYYYMMDD string into a date.

        Args:
            date_str: Date string from the API

        Returns:
            date object, or None if the string is malformed or names a
            day that does not exist
        """
        if not date_str or not DATE_PATTERN.fullmatch(date_str):
            return None
        try:
            return datetime.strptime(date_str, '%Y%m%d').date()
        except ValueError:
            return None

    def _group_by_date(
        self,
        records: List[RawScheduleRecord]
    ) -> 'OrderedDict[str, List[RawScheduleRecord]]':
        buckets: 'OrderedDict[str, List[RawScheduleRecord]]' = OrderedDict()
        for record in records:
            buckets.setdefault(record.date, []).append(record)
        return buckets

    def _detect_recurring_spans(
        self,
        records: List[RawScheduleRecord]
    ) -> Tuple[List[CalendarEventDescriptor], Set[str]]:
        """
        Collapse recurring marker days into multi-day span events.

        Args:
            records: Filtered records sorted by date

        Returns:
            Tuple of (span descriptors, set of dates covered by a span)
        """
        dates_by_marker: Dict[str, List[str]] = {
            marker: [] for marker in self.recurring_markers
        }
        for record in records:
            dates = dates_by_marker.get(record.event_name)
            if dates is not None and record.date not in dates:
                dates.append(record.date)

        spans = []
        absorbed = set()
        for marker, dates in dates_by_marker.items():
            if len(dates) < MIN_RECURRING_DAYS:
                continue

            first = self.parse_date(min(dates))
            last = self.parse_date(max(dates))
            spans.append(CalendarEventDescriptor(
                start=first,
                end=last + timedelta(days=1),
                summary=marker,
                description=marker,
                location=self.location,
                uid=f"{self.source}-{first.year}-{marker}"
            ))
            absorbed.update(dates)
            logger.debug(
                f"Collapsed {len(dates)} '{marker}' days into {first} ~ {last}"
            )

        return spans, absorbed

    def _descriptors_for_date(
        self,
        day: str,
        bucket: List[RawScheduleRecord]
    ) -> List[CalendarEventDescriptor]:
        if len(bucket) == 1:
            return [self._single_descriptor(bucket[0])]

        categories = {
            classify(record.event_name, self.category_rules)
            for record in bucket
        }
        if len(categories) == 1:
            return [self._combined_descriptor(day, bucket)]

        descriptors = []
        seen_uids: Set[str] = set()
        for index, record in enumerate(bucket):
            descriptor = self._single_descriptor(record)
            # Identical rows on one day still need distinct identifiers
            if descriptor.uid in seen_uids:
                descriptor = replace(descriptor, uid=f"{descriptor.uid}-{index}")
            seen_uids.add(descriptor.uid)
            descriptors.append(descriptor)
        return descriptors

    def _single_descriptor(
        self,
        record: RawScheduleRecord
    ) -> CalendarEventDescriptor:
        start = self.parse_date(record.date)
        summary = record.event_name
        if self.annotate_grade_scope and record.grade_scope:
            summary = f"{summary}({record.grade_scope})"

        return CalendarEventDescriptor(
            start=start,
            end=start + timedelta(days=1),
            summary=summary,
            description=self._record_text(record),
            location=self.location,
            uid=self.generate_event_id(
                self.source,
                record.date,
                record.event_name,
                detail=self._record_text(record) + record.grade_scope
            )
        )

    def _combined_descriptor(
        self,
        day: str,
        bucket: List[RawScheduleRecord]
    ) -> CalendarEventDescriptor:
        start = self.parse_date(day)
        names = list(OrderedDict.fromkeys(record.event_name for record in bucket))

        lines = []
        for record in bucket:
            text = self._record_text(record)
            lines.append(f"{record.event_name}: {text}" if text else record.event_name)

        return CalendarEventDescriptor(
            start=start,
            end=start + timedelta(days=1),
            summary=', '.join(names),
            description='\n'.join(lines),
            location=self.location,
            uid=f"{self.source}-{day}-combined"
        )

    @staticmethod
    def _record_text(record: RawScheduleRecord) -> str:
        """Join content and description with a newline when both exist."""
        parts = [text for text in (record.content, record.description) if text]
        return '\n'.join(parts)

    @staticmethod
    def generate_event_id(
        source: str,
        day: str,
        event_name: str,
        detail: str = ''
    ) -> str:
        """
        Generate a stable identifier for a single-day event.

        Args:
            source: Identifier prefix
            day: Event date (YYYYMMDD)
            event_name: Event name
            detail: Extra text telling apart same-named events on one day

        Returns:
            Identifier of the form '<source>-<date>-<hash>'
        """
        digest = hashlib.sha256(
            f"{event_name}|{detail}".encode('utf-8')
        ).hexdigest()
        return f"{source}-{day}-{digest[:12]}"
