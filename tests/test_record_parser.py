"""LogRecordParser tests.

The text-to-float rule (numbers pass through, strings use their leading
numeric prefix, everything else is 0.0) is pinned here on purpose: changing it
changes published metric values.
"""
import json
import pytest
from rds_os_metrics.aggregation.parser import LogRecordParser, MalformedRecord, ProcessSample, to_float

TS = 1_700_000_000_000


def _payload(**overrides):
    doc = {
        'engine': 'POSTGRES',
        'instanceID': 'db-1',
        'processList': [
            {'name': 'postgres', 'cpuUsedPc': 5.0, 'memoryUsedPc': 1.25, 'rss': 1024},
            {'name': 'OS processes', 'cpuUsedPc': '0.5', 'memoryUsedPc': '3'},
        ],
        'cpuUtilization': {'user': 2.0, 'idle': 97.0, 'total': 3.0},
    }
    doc.update(overrides)
    return json.dumps(doc)


parser = LogRecordParser()


def test_parse_valid_payload():
    rec = parser.parse(_payload(), TS)
    assert rec.timestamp_ms == TS
    assert rec.process_list == (
        ProcessSample('postgres', 5.0, 1.25),
        ProcessSample('OS processes', 0.5, 3.0),
    )
    assert rec.cpu_map == {'user': 2.0, 'idle': 97.0, 'total': 3.0}


def test_parse_bytes_payload():
    rec = parser.parse(_payload().encode('utf-8'), TS)
    assert len(rec.process_list) == 2


@pytest.mark.parametrize('value,expected', [
    (12, 12.0),
    (7.5, 7.5),
    ('5.0', 5.0),
    ('  42', 42.0),
    ('12.5%', 12.5),
    ('-3.25', -3.25),
    ('1e2', 100.0),
    ('.5', 0.5),
    ('abc', 0.0),
    ('', 0.0),
    (None, 0.0),
    (True, 0.0),
    ([1], 0.0),
    ({'v': 1}, 0.0),
    ('1e999', 0.0),
    (float('nan'), 0.0),
    (float('inf'), 0.0),
    (float('-inf'), 0.0),
    (10 ** 400, 0.0),
])
def test_text_to_float_coercion(value, expected):
    assert to_float(value) == expected


def test_missing_numeric_fields_default_to_zero():
    rec = parser.parse(_payload(processList=[{'name': 'postgres'}]), TS)
    assert rec.process_list == (ProcessSample('postgres', 0.0, 0.0),)


def test_missing_name_becomes_empty_string():
    rec = parser.parse(_payload(processList=[{'cpuUsedPc': 1}]), TS)
    assert rec.process_list[0].name == ''


def test_null_sections_are_empty_not_malformed():
    rec = parser.parse(_payload(processList=None, cpuUtilization=None), TS)
    assert rec.process_list == () and rec.cpu_utilization == ()


def test_empty_sections():
    rec = parser.parse(_payload(processList=[], cpuUtilization={}), TS)
    assert rec.process_list == () and rec.cpu_map == {}


@pytest.mark.parametrize('raw', [
    'not json at all',
    '',
    '[1, 2, 3]',
    '"just a string"',
    json.dumps({'cpuUtilization': {}}),
    json.dumps({'processList': []}),
    _payload(processList={'name': 'postgres'}),
    _payload(processList=['postgres']),
    _payload(cpuUtilization=[1, 2]),
    b'\xff\xfe\x00garbage',
    '{"processList": [], "cpuUtilization": {"user": NaN}}',
    '{"processList": [{"name": "postgres", "cpuUsedPc": Infinity}], "cpuUtilization": {}}',
    '{"processList": [], "cpuUtilization": {"idle": -Infinity}}',
], ids=[
    'not-json', 'empty', 'array', 'string', 'no-processList', 'no-cpuUtilization',
    'processList-object', 'processList-strings', 'cpuUtilization-list', 'bad-utf8',
    'nan-token', 'infinity-token', 'negative-infinity-token',
])
def test_malformed_payloads(raw):
    with pytest.raises(MalformedRecord):
        parser.parse(raw, TS)


def test_malformed_record_is_value_error():
    assert issubclass(MalformedRecord, ValueError)


def test_exponent_overflow_in_json_number_is_zero():
    rec = parser.parse('{"processList": [{"name": "postgres", "cpuUsedPc": 1e999}], "cpuUtilization": {}}', TS)
    assert rec.process_list == (ProcessSample('postgres', 0.0, 0.0),)
