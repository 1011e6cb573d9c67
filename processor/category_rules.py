"""Static filter and category rules for NEIS schedule events."""
from typing import Sequence, Tuple

# Non-instructional day types that never become calendar entries
EXCLUDED_EVENT_NAMES = ('토요휴업일', '일요휴업일')

# Substring of SBTR_DD_SC_NM marking a public holiday
PUBLIC_HOLIDAY_MARKER = '공휴일'

# Event names whose daily rows collapse into a single multi-day span
RECURRING_MARKERS = ('여름방학', '겨울방학')

DEFAULT_CATEGORY = 'general'

# Ordered (substring, category) pairs. First match wins, so narrower
# patterns must come before broader ones.
CATEGORY_RULES: Tuple[Tuple[str, str], ...] = (
    ('공휴일', 'holiday'),
    ('휴업일', 'holiday'),
    ('재량휴업', 'holiday'),
    ('개교기념일', 'holiday'),
    ('대체', 'holiday'),
    ('방학', 'vacation'),
    ('개학', 'vacation'),
    ('입학', 'vacation'),
    ('졸업', 'vacation'),
    ('종업', 'vacation'),
    ('수료', 'vacation'),
    ('고사', 'exam'),
    ('시험', 'exam'),
    ('평가', 'exam'),
    ('모의', 'exam'),
    ('교육', 'education'),
    ('연수', 'education'),
    ('수업', 'education'),
    ('체험', 'activity'),
    ('축제', 'activity'),
    ('대회', 'activity'),
    ('수련', 'activity'),
    ('활동', 'activity'),
    ('행사', 'activity'),
)


def classify(event_name: str,
             rules: Sequence[Tuple[str, str]] = CATEGORY_RULES) -> str:
    """
    Classify an event name by ordered substring matching.

    Args:
        event_name: Event name as reported by the API
        rules: Ordered (substring, category) pairs

    Returns:
        Category of the first matching rule, or 'general'
    """
    for pattern, category in rules:
        if pattern in event_name:
            return category
    return DEFAULT_CATEGORY
