"""Client for the NEIS SchoolSchedule open API."""
import logging
import re
from typing import List, Optional

import requests

from processor.models import RawScheduleRecord

logger = logging.getLogger(__name__)

DATE_PATTERN = re.compile(r'\d{8}')


class ConfigurationError(ValueError):
    """Raised when required settings are missing or arguments are malformed."""


class NeisScheduleClient:
    """Fetches a school's academic schedule from the NEIS open API."""

    ENDPOINT = 'SchoolSchedule'
    RESULT_OK = 'INFO-000'
    RESULT_NO_DATA = 'INFO-200'
    PAGE_SIZE = 1000

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        office_code: Optional[str] = None,
        school_code: Optional[str] = None,
        timeout: int = 10
    ):
        """
        Initialize the schedule client.

        Args:
            base_url: NEIS API base URL (NEIS_API_URL)
            api_key: NEIS access key (NEIS_KEY)
            office_code: Education office code (ATPT_OFCDC_SC_CODE)
            school_code: School code (SD_SCHUL_CODE)
            timeout: HTTP request timeout in seconds (default: 10)
        """
        self.base_url = base_url
        self.api_key = api_key
        self.office_code = office_code
        self.school_code = school_code
        self.timeout = timeout

    def fetch_schedule(self, start_date: str, end_date: str) -> List[RawScheduleRecord]:
        """
        Fetch schedule records for a date range.

        Args:
            start_date: First day of the range (YYYYMMDD)
            end_date: Last day of the range (YYYYMMDD)

        Returns:
            List of RawScheduleRecord objects, empty when the API has no
            data or the request fails

        Raises:
            ConfigurationError: If settings are missing or a date is
                malformed. No request is sent in that case.
        """
        self._validate_config()
        self._validate_dates(start_date, end_date)

        logger.info(
            f"Fetching school schedule for {start_date} ~ {end_date} "
            f"(office={self.office_code}, school={self.school_code})"
        )

        url = f"{self.base_url.rstrip('/')}/{self.ENDPOINT}"
        params = {
            'KEY': self.api_key,
            'Type': 'json',
            'pIndex': 1,
            'pSize': self.PAGE_SIZE,
            'ATPT_OFCDC_SC_CODE': self.office_code,
            'SD_SCHUL_CODE': self.school_code,
            'TI_FROM_YMD': start_date,
            'TI_TO_YMD': end_date
        }

        try:
            response = requests.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
        except requests.HTTPError as e:
            logger.error(
                f"NEIS API error - status {e.response.status_code}: "
                f"{e.response.text[:500]} "
                f"(url={url}, params={self._masked(params)})"
            )
            return []
        except requests.RequestException as e:
            # Connection errors echo the full URL, key included
            reason = str(e).replace(self.api_key, '***')
            logger.error(
                f"No response from NEIS API: {reason} "
                f"(url={url}, params={self._masked(params)})"
            )
            return []

        logger.debug(f"NEIS API response status: {response.status_code}")
        try:
            payload = response.json()
        except ValueError as e:
            logger.error(f"NEIS API returned a non-JSON body: {e}")
            return []

        rows = self._parse_envelope(payload, start_date, end_date)
        records = self._to_records(rows)
        logger.info(f"Successfully fetched {len(records)} schedule records")
        return records

    def _validate_config(self) -> None:
        settings = {
            'NEIS_API_URL': self.base_url,
            'NEIS_KEY': self.api_key,
            'ATPT_OFCDC_SC_CODE': self.office_code,
            'SD_SCHUL_CODE': self.school_code
        }
        missing = [name for name, value in settings.items() if not value]
        if missing:
            status = ', '.join(
                f"{name}={'set' if value else 'missing'}"
                for name, value in settings.items()
            )
            logger.error(f"Missing required NEIS settings ({status})")
            raise ConfigurationError(
                f"Missing required NEIS settings: {', '.join(missing)}"
            )

    def _validate_dates(self, start_date: str, end_date: str) -> None:
        for value in (start_date, end_date):
            if not isinstance(value, str) or not DATE_PATTERN.fullmatch(value):
                raise ConfigurationError(
                    f"Invalid date format: startDate={start_date}, "
                    f"endDate={end_date}. Expected format: YYYYMMDD"
                )
        if start_date > end_date:
            raise ConfigurationError(
                f"Start date {start_date} is after end date {end_date}"
            )

    def _parse_envelope(self, payload, start_date: str, end_date: str) -> List[dict]:
        """
        Extract schedule rows from the API response envelope.

        Args:
            payload: Decoded JSON response
            start_date: Requested start date, for log messages
            end_date: Requested end date, for log messages

        Returns:
            List of row dictionaries, empty for no-data and error results
        """
        if not isinstance(payload, dict):
            logger.error(f"Unexpected NEIS response structure: {str(payload)[:500]}")
            return []

        sections = payload.get(self.ENDPOINT)
        if isinstance(sections, list) and sections:
            try:
                result = sections[0]['head'][1]['RESULT']
                code = result.get('CODE')
            except (KeyError, IndexError, TypeError, AttributeError):
                logger.error(f"Unexpected NEIS response head: {str(sections[0])[:500]}")
                return []

            if code == self.RESULT_OK:
                try:
                    rows = sections[1]['row']
                except (KeyError, IndexError, TypeError):
                    logger.error("NEIS response reported success but has no rows")
                    return []
                return rows if isinstance(rows, list) else []

            if code == self.RESULT_NO_DATA:
                logger.warning(
                    f"No school schedule data available for the period "
                    f"{start_date} ~ {end_date}"
                )
                return []

            logger.error(f"NEIS API returned {code}: {result.get('MESSAGE')}")
            return []

        result = payload.get('RESULT')
        if isinstance(result, dict) and result.get('CODE'):
            if result['CODE'] == self.RESULT_NO_DATA:
                logger.warning(
                    f"No school schedule data available for the period "
                    f"{start_date} ~ {end_date}"
                )
            else:
                logger.error(
                    f"NEIS API returned {result['CODE']}: {result.get('MESSAGE')}"
                )
            return []

        logger.error(f"Unexpected NEIS response structure: {str(payload)[:500]}")
        return []

    def _to_records(self, rows: List[dict]) -> List[RawScheduleRecord]:
        records = []
        for row in rows:
            if not isinstance(row, dict):
                logger.warning(f"Skipping malformed schedule row: {row!r}")
                continue
            record = RawScheduleRecord.from_api_row(row)
            if not record.date or not record.event_name:
                logger.warning(f"Skipping schedule row without date or name: {row!r}")
                continue
            records.append(record)
        return records

    @staticmethod
    def _masked(params: dict) -> dict:
        return {**params, 'KEY': '***'}
