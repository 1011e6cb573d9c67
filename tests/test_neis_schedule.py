"""Unit tests for NeisScheduleClient."""
import pytest
import responses
from requests.exceptions import ConnectionError, Timeout
from responses import matchers

from fetcher.neis_schedule import ConfigurationError, NeisScheduleClient

BASE_URL = 'https://open.neis.go.kr/hub'
SCHEDULE_URL = f'{BASE_URL}/SchoolSchedule'


def make_client(**overrides):
    settings = {
        'base_url': BASE_URL,
        'api_key': 'test-key',
        'office_code': 'B10',
        'school_code': '7010536',
        'timeout': 10
    }
    settings.update(overrides)
    return NeisScheduleClient(**settings)


def schedule_payload(code, rows=None, message='정상 처리되었습니다.'):
    sections = [{
        'head': [
            {'list_total_count': len(rows or [])},
            {'RESULT': {'CODE': code, 'MESSAGE': message}}
        ]
    }]
    if rows is not None:
        sections.append({'row': rows})
    return {'SchoolSchedule': sections}


SAMPLE_ROWS = [
    {
        'ATPT_OFCDC_SC_CODE': 'B10',
        'SD_SCHUL_CODE': '7010536',
        'AA_YMD': '20250301',
        'EVENT_NM': '입학식',
        'SBTR_DD_SC_NM': '해당없음',
        'EVENT_CNTNT': '신입생 입학',
        'THREE_GRADE_EVENT_YN': 'N'
    },
    {
        'AA_YMD': '20250308',
        'EVENT_NM': '토요휴업일',
        'SBTR_DD_SC_NM': '휴업일',
        'EVENT_CNTNT': None,
        'THREE_GRADE_EVENT_YN': '*'
    }
]


class TestNeisScheduleClient:
    """Test cases for NeisScheduleClient class."""

    @responses.activate
    def test_fetch_schedule_success(self):
        """Test successful schedule fetching and row conversion."""
        responses.add(
            responses.GET,
            SCHEDULE_URL,
            json=schedule_payload('INFO-000', SAMPLE_ROWS),
            status=200,
            match=[matchers.query_param_matcher({
                'KEY': 'test-key',
                'Type': 'json',
                'pIndex': '1',
                'pSize': '1000',
                'ATPT_OFCDC_SC_CODE': 'B10',
                'SD_SCHUL_CODE': '7010536',
                'TI_FROM_YMD': '20250301',
                'TI_TO_YMD': '20260228'
            })]
        )

        client = make_client()
        records = client.fetch_schedule('20250301', '20260228')

        assert len(records) == 2
        assert records[0].date == '20250301'
        assert records[0].event_name == '입학식'
        assert records[0].category == '해당없음'
        assert records[0].content == '신입생 입학'
        assert records[0].description == ''
        assert records[0].grade_scope == 'N'
        assert records[1].event_name == '토요휴업일'
        assert records[1].content == ''
        assert len(responses.calls) == 1

    @responses.activate
    def test_fetch_schedule_content_fallback(self):
        """Test CONTENT is used when EVENT_CNTNT is absent."""
        responses.add(
            responses.GET,
            SCHEDULE_URL,
            json=schedule_payload('INFO-000', [{
                'AA_YMD': '20250502',
                'EVENT_NM': '체육대회',
                'CONTENT': '전교생 참여',
                'DESCRIPTION': '우천시 연기'
            }])
        )

        records = make_client().fetch_schedule('20250501', '20250531')

        assert records[0].content == '전교생 참여'
        assert records[0].description == '우천시 연기'

    @responses.activate
    def test_fetch_schedule_skips_rows_without_date_or_name(self):
        """Test rows missing required fields are dropped."""
        responses.add(
            responses.GET,
            SCHEDULE_URL,
            json=schedule_payload('INFO-000', [
                {'EVENT_NM': '날짜 없음'},
                {'AA_YMD': '20250302'},
                {'AA_YMD': '20250303', 'EVENT_NM': '개학식'}
            ])
        )

        records = make_client().fetch_schedule('20250301', '20250331')

        assert [record.event_name for record in records] == ['개학식']

    @responses.activate
    def test_fetch_schedule_converts_non_string_values(self):
        """Test numeric or odd-typed fields are read as text instead of raising."""
        responses.add(
            responses.GET,
            SCHEDULE_URL,
            json=schedule_payload('INFO-000', [{
                'AA_YMD': 20250301,
                'EVENT_NM': '입학식',
                'SBTR_DD_SC_NM': 0,
                'EVENT_CNTNT': 2025,
                'THREE_GRADE_EVENT_YN': False
            }])
        )

        records = make_client().fetch_schedule('20250301', '20250331')

        assert len(records) == 1
        assert records[0].date == '20250301'
        assert records[0].category == '0'
        assert records[0].content == '2025'
        assert records[0].grade_scope == 'False'

    @responses.activate
    def test_fetch_schedule_no_data(self, caplog):
        """Test INFO-200 is treated as an empty schedule, not an error."""
        responses.add(
            responses.GET,
            SCHEDULE_URL,
            json={'RESULT': {'CODE': 'INFO-200', 'MESSAGE': '해당하는 데이터가 없습니다.'}}
        )

        with caplog.at_level('WARNING'):
            records = make_client().fetch_schedule('20250801', '20250831')

        assert records == []
        assert any('No school schedule data' in message for message in caplog.messages)

    @responses.activate
    def test_fetch_schedule_no_data_in_head(self):
        """Test INFO-200 reported inside the schedule head."""
        responses.add(
            responses.GET,
            SCHEDULE_URL,
            json=schedule_payload('INFO-200', message='해당하는 데이터가 없습니다.')
        )

        assert make_client().fetch_schedule('20250801', '20250831') == []

    @responses.activate
    def test_fetch_schedule_error_code_in_head(self, caplog):
        """Test unknown result codes yield an empty list and an error log."""
        responses.add(
            responses.GET,
            SCHEDULE_URL,
            json=schedule_payload('INFO-300', message='관리자에 의해 인증키 사용이 제한되었습니다.')
        )

        with caplog.at_level('ERROR'):
            records = make_client().fetch_schedule('20250301', '20250331')

        assert records == []
        assert any('INFO-300' in message for message in caplog.messages)

    @responses.activate
    def test_fetch_schedule_error_envelope(self, caplog):
        """Test the top-level RESULT error envelope."""
        responses.add(
            responses.GET,
            SCHEDULE_URL,
            json={'RESULT': {'CODE': 'ERROR-290', 'MESSAGE': '인증키가 유효하지 않습니다.'}}
        )

        with caplog.at_level('ERROR'):
            records = make_client().fetch_schedule('20250301', '20250331')

        assert records == []
        assert any('ERROR-290' in message for message in caplog.messages)

    @responses.activate
    def test_fetch_schedule_unexpected_structure(self):
        """Test an unknown response shape yields an empty list."""
        responses.add(responses.GET, SCHEDULE_URL, json={'unexpected': True})

        assert make_client().fetch_schedule('20250301', '20250331') == []

    @responses.activate
    def test_fetch_schedule_success_without_rows(self):
        """Test a success head with no row section yields an empty list."""
        responses.add(
            responses.GET,
            SCHEDULE_URL,
            json=schedule_payload('INFO-000')
        )

        assert make_client().fetch_schedule('20250301', '20250331') == []

    @responses.activate
    def test_fetch_schedule_non_json_body(self):
        """Test a non-JSON body yields an empty list."""
        responses.add(
            responses.GET,
            SCHEDULE_URL,
            body='<html>maintenance</html>',
            status=200
        )

        assert make_client().fetch_schedule('20250301', '20250331') == []

    @responses.activate
    def test_fetch_schedule_http_error(self, caplog):
        """Test non-2xx responses are logged and not retried."""
        responses.add(
            responses.GET,
            SCHEDULE_URL,
            body='Server Error',
            status=500
        )

        with caplog.at_level('ERROR'):
            records = make_client().fetch_schedule('20250301', '20250331')

        assert records == []
        assert len(responses.calls) == 1
        assert any('status 500' in message for message in caplog.messages)
        assert not any('test-key' in message for message in caplog.messages)

    @responses.activate
    def test_fetch_schedule_timeout(self):
        """Test timeout handling."""
        responses.add(
            responses.GET,
            SCHEDULE_URL,
            body=Timeout('Request timed out')
        )

        assert make_client().fetch_schedule('20250301', '20250331') == []
        assert len(responses.calls) == 1

    @responses.activate
    def test_fetch_schedule_connection_error(self):
        """Test connection failures yield an empty list."""
        responses.add(
            responses.GET,
            SCHEDULE_URL,
            body=ConnectionError('Connection refused')
        )

        assert make_client().fetch_schedule('20250301', '20250331') == []

    @responses.activate
    def test_fetch_schedule_tolerates_trailing_slash(self):
        """Test a base URL ending in a slash still hits the endpoint."""
        responses.add(
            responses.GET,
            SCHEDULE_URL,
            json=schedule_payload('INFO-000', SAMPLE_ROWS[:1])
        )

        client = make_client(base_url=BASE_URL + '/')

        assert len(client.fetch_schedule('20250301', '20250331')) == 1

    @responses.activate
    @pytest.mark.parametrize('missing', ['base_url', 'api_key', 'office_code', 'school_code'])
    def test_fetch_schedule_missing_config(self, missing):
        """Test missing settings fail before any request is sent."""
        client = make_client(**{missing: None})

        with pytest.raises(ConfigurationError):
            client.fetch_schedule('20250301', '20260228')

        assert len(responses.calls) == 0

    @responses.activate
    @pytest.mark.parametrize('start_date, end_date', [
        ('2025031', '20260228'),
        ('20250301', '202602281'),
        ('2025-03-01', '20260228'),
        ('20260228', '20250301'),
    ])
    def test_fetch_schedule_invalid_dates(self, start_date, end_date):
        """Test malformed date arguments fail before any request is sent."""
        client = make_client()

        with pytest.raises(ConfigurationError):
            client.fetch_schedule(start_date, end_date)

        assert len(responses.calls) == 0

    def test_configuration_error_is_value_error(self):
        """Test ConfigurationError can be handled as a ValueError."""
        assert issubclass(ConfigurationError, ValueError)
