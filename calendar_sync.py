"""Entry points for the NEIS school calendar sync."""
import argparse
import json
import logging
import os
import sys
import time
from dataclasses import dataclass, replace
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Tuple

from dotenv import load_dotenv

from fetcher.neis_schedule import ConfigurationError, NeisScheduleClient
from processor.models import SyncResult
from processor.schedule_transformer import ScheduleTransformer
from storage.ics_writer import IcsCalendarWriter

logger = logging.getLogger(__name__)

DEFAULT_SCHOOL_NAME = '학교 일정'
DEFAULT_OUTPUT_PATH = 'calendar.ics'
DEFAULT_TIMEOUT_SECONDS = 10

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2


class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for one sync run."""
    api_url: Optional[str]
    api_key: Optional[str]
    office_code: Optional[str]
    school_code: Optional[str]
    start_date: str
    end_date: str
    school_name: str = DEFAULT_SCHOOL_NAME
    output_path: str = DEFAULT_OUTPUT_PATH
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS
    log_level: str = 'INFO'
    exclude_public_holidays: bool = False
    annotate_grade_scope: bool = False


def academic_year_range(today: date) -> Tuple[str, str]:
    """
    Date range of the Korean school year containing ``today``.

    The school year starts on 1 March and ends on the last day of
    February of the following year.

    Args:
        today: Reference date

    Returns:
        Tuple of (start_date, end_date) as YYYYMMDD strings
    """
    first_year = today.year if today.month >= 3 else today.year - 1
    start = date(first_year, 3, 1)
    # Day before 1 March handles leap years
    end = date.fromordinal(date(first_year + 1, 3, 1).toordinal() - 1)
    return start.strftime('%Y%m%d'), end.strftime('%Y%m%d')


def _flag(value: Optional[str]) -> bool:
    return (value or '').strip().lower() in ('1', 'true', 'yes', 'on')


def load_settings(
    environ: Optional[Mapping[str, str]] = None,
    today: Optional[date] = None
) -> Settings:
    """
    Read settings from environment variables.

    Args:
        environ: Mapping to read from (default: os.environ)
        today: Reference date for the default range (default: today)

    Returns:
        Settings object. Required API values may be None; the schedule
        client rejects them before any request is sent.

    Raises:
        ConfigurationError: If TIMEOUT_SECONDS is not an integer
    """
    env = os.environ if environ is None else environ
    default_start, default_end = academic_year_range(today or date.today())

    timeout_raw = env.get('TIMEOUT_SECONDS', str(DEFAULT_TIMEOUT_SECONDS))
    try:
        timeout_seconds = int(timeout_raw)
    except ValueError:
        raise ConfigurationError(
            f"TIMEOUT_SECONDS must be an integer, got {timeout_raw!r}"
        )

    return Settings(
        api_url=env.get('NEIS_API_URL') or None,
        api_key=env.get('NEIS_KEY') or None,
        office_code=env.get('ATPT_OFCDC_SC_CODE') or None,
        school_code=env.get('SD_SCHUL_CODE') or None,
        start_date=env.get('START_DATE') or default_start,
        end_date=env.get('END_DATE') or default_end,
        school_name=env.get('SCHOOL_NAME') or DEFAULT_SCHOOL_NAME,
        output_path=env.get('OUTPUT_PATH') or DEFAULT_OUTPUT_PATH,
        timeout_seconds=timeout_seconds,
        log_level=env.get('LOG_LEVEL', 'INFO'),
        exclude_public_holidays=_flag(env.get('EXCLUDE_PUBLIC_HOLIDAYS')),
        annotate_grade_scope=_flag(env.get('ANNOTATE_GRADE_SCOPE'))
    )


def run_sync(settings: Settings) -> SyncResult:
    """
    Fetch the school schedule and write it as an .ics file.

    Args:
        settings: Runtime configuration

    Returns:
        SyncResult describing the run

    Raises:
        ConfigurationError: If required settings or dates are invalid
    """
    client = NeisScheduleClient(
        base_url=settings.api_url,
        api_key=settings.api_key,
        office_code=settings.office_code,
        school_code=settings.school_code,
        timeout=settings.timeout_seconds
    )
    transformer = ScheduleTransformer(
        location=settings.school_name,
        exclude_public_holidays=settings.exclude_public_holidays,
        annotate_grade_scope=settings.annotate_grade_scope
    )
    writer = IcsCalendarWriter(calendar_name=settings.school_name)

    logger.info("Fetching school schedule from NEIS")
    records = client.fetch_schedule(settings.start_date, settings.end_date)

    errors: List[str] = []
    if not records:
        # An empty schedule and a failed request look the same here;
        # the client has already logged which one it was.
        message = 'No schedule data fetched'
        logger.error(message)
        errors.append(message)
        return SyncResult(
            records_fetched=0,
            events_generated=0,
            output_path=settings.output_path,
            saved=False,
            errors=errors
        )

    logger.info("Transforming schedule records into calendar events")
    descriptors = transformer.transform(records)

    logger.info("Writing calendar file")
    document = writer.emit(descriptors)
    saved = writer.persist(document, settings.output_path)
    if not saved:
        errors.append(f"Failed to save calendar to {settings.output_path}")

    return SyncResult(
        records_fetched=len(records),
        events_generated=len(descriptors),
        output_path=settings.output_path,
        saved=saved,
        errors=errors
    )


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description='Convert a NEIS school schedule into an iCalendar file.'
    )
    parser.add_argument('--start-date', help='first day of the range (YYYYMMDD)')
    parser.add_argument('--end-date', help='last day of the range (YYYYMMDD)')
    parser.add_argument('--output', help='output .ics path')
    parser.add_argument('--log-level', help='DEBUG, INFO, WARNING or ERROR')
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Command line entry point.

    Returns:
        Process exit code: 0 on success, 1 when nothing was fetched or
        the file could not be saved, 2 on configuration errors
    """
    args = _parse_args(argv)
    load_dotenv()

    try:
        settings = load_settings()
    except ConfigurationError as e:
        setup_logging()
        logger.error(f"Invalid configuration: {e}")
        return EXIT_CONFIG_ERROR

    overrides: Dict[str, Any] = {}
    if args.start_date:
        overrides['start_date'] = args.start_date
    if args.end_date:
        overrides['end_date'] = args.end_date
    if args.output:
        overrides['output_path'] = args.output
    if args.log_level:
        overrides['log_level'] = args.log_level
    settings = replace(settings, **overrides)

    setup_logging(settings.log_level)

    try:
        result = run_sync(settings)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        return EXIT_CONFIG_ERROR
    except Exception as e:
        logger.error(f"Calendar sync failed: {str(e)}", exc_info=True)
        return EXIT_FAILURE

    if result.records_fetched == 0 or not result.saved:
        return EXIT_FAILURE

    logger.info(
        f"Calendar sync completed: {result.events_generated} events "
        f"written to {result.output_path}"
    )
    return EXIT_OK


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda handler for scheduled calendar syncs.

    Args:
        event: Trigger payload; may override 'start_date', 'end_date'
            and 'output_path'
        context: Lambda context object

    Returns:
        Response dict with statusCode and summary statistics
    """
    start_time = time.time()

    try:
        settings = load_settings()
    except ConfigurationError as e:
        setup_logging()
        logger.error(f"Invalid configuration: {e}")
        return _error_response(400, 'Invalid configuration', e, start_time)

    overrides = {
        key: event[key]
        for key in ('start_date', 'end_date', 'output_path')
        if event and event.get(key)
    }
    settings = replace(settings, **overrides)

    setup_logging(settings.log_level)
    logger.info(
        f"Lambda execution started for {settings.start_date} ~ "
        f"{settings.end_date}"
    )

    try:
        result = run_sync(settings)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        return _error_response(400, 'Invalid configuration', e, start_time)
    except Exception as e:
        logger.error(
            f"Lambda execution failed: {str(e)}",
            exc_info=True
        )
        return _error_response(500, 'Sync failed', e, start_time)

    duration = time.time() - start_time
    succeeded = result.records_fetched > 0 and result.saved

    if succeeded:
        logger.info(
            f"Lambda execution completed successfully in {duration:.2f}s"
        )
    else:
        logger.error(f"Lambda execution failed: {'; '.join(result.errors)}")

    return {
        'statusCode': 200 if succeeded else 500,
        'body': json.dumps({
            'message': 'Sync completed successfully' if succeeded else 'Sync failed',
            'statistics': {
                'records_fetched': result.records_fetched,
                'events_generated': result.events_generated,
                'output_path': result.output_path,
                'duration_seconds': round(duration, 2)
            },
            'errors': result.errors
        }, ensure_ascii=False)
    }


def _error_response(
    status_code: int,
    message: str,
    error: Exception,
    start_time: float
) -> Dict[str, Any]:
    duration = time.time() - start_time
    return {
        'statusCode': status_code,
        'body': json.dumps({
            'message': message,
            'error': str(error),
            'error_type': type(error).__name__,
            'duration_seconds': round(duration, 2)
        }, ensure_ascii=False)
    }


if __name__ == '__main__':
    sys.exit(main())
