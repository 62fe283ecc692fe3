import json
import logging
import pytest
from rds_os_metrics.publish.timescale import TimescaleMetricPublisher
from rds_os_metrics import handler as invocation
from rds_os_metrics.aggregation.parser import RawLogEvent
from rds_os_metrics.collectors.cache import ResourceIdCache
from rds_os_metrics.collectors.duration import DurationParseError

NOW = 1_700_000_120.0


class FakeResolver:
    def __init__(self, rid='db-RESOURCE', error=None):
        self.rid = rid
        self.error = error
        self.calls = []

    def resolve(self, instance_id):
        self.calls.append(instance_id)
        if self.error:
            raise self.error
        return self.rid


class FakeSource:
    def __init__(self, events):
        self.events = events
        self.calls = []

    def fetch(self, stream_name, since_ms):
        self.calls.append((stream_name, since_ms))
        return iter(self.events)


class FakeConn:
    def __init__(self, fail=False):
        self.fail = fail
        self.rows = []
        self.closed = False

    def cursor(self):
        return FakeCursor(self)

    def commit(self):
        pass

    def rollback(self):
        pass

    def close(self):
        self.closed = True


class FakeCursor:
    def __init__(self, conn):
        self.conn = conn

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def executemany(self, sql, rows):
        if self.conn.fail:
            raise RuntimeError('insert failed')
        self.conn.rows.extend(rows)


class RecordingPublisher:
    def __init__(self, fail_namespace=None):
        self.fail_namespace = fail_namespace
        self.published = {}

    def publish(self, data):
        ns = data[0].namespace
        if ns == self.fail_namespace:
            raise RuntimeError(f'{ns} rejected')
        self.published.setdefault(ns, []).extend(data)
        return len(data)


def _events():
    doc = {
        'processList': [{'name': 'postgres', 'cpuUsedPc': '5.0', 'memoryUsedPc': '1.0'}],
        'cpuUtilization': {'user': '2.0', 'idle': '97.0'},
    }
    t0 = int(NOW * 1000) - 60_000
    return [RawLogEvent(t0, json.dumps(doc)), RawLogEvent(t0 + 30_000, 'garbage'), RawLogEvent(t0 + 60_000, json.dumps(doc))]


def _run(event, **kw):
    kw.setdefault('cache', ResourceIdCache())
    kw.setdefault('resolver', FakeResolver())
    kw.setdefault('log_source', FakeSource(_events()))
    kw.setdefault('publisher', RecordingPublisher())
    return invocation.handler(event, {}, clock=lambda: NOW, **kw), kw


def test_handler_publishes_both_namespaces():
    summary, kw = _run({'instance_id': 'X'})
    assert summary['resource_id'] == 'db-RESOURCE'
    assert summary['interval'] == '1 minute' and summary['interval_seconds'] == 60
    assert summary['since_ms'] == int(NOW * 1000) - 60_000
    assert (summary['events'], summary['records'], summary['rejected']) == (3, 2, 1)
    assert summary['published'] == {'RDS_OS_Metrics': 2, 'RDS_CPU_Metrics': 2}
    assert kw['log_source'].calls == [('db-RESOURCE', int(NOW * 1000) - 60_000)]

    os_data = {d.metric_name: d for d in kw['publisher'].published['RDS_OS_Metrics']}
    cpu = os_data['CPU']
    assert cpu.dimensions == (('rds_instance', 'X'), ('service', 'postgres'))
    assert (cpu.sample_count, cpu.sum, cpu.minimum, cpu.maximum) == (2, 10.0, 5.0, 5.0)
    cpu_data = {d.metric_name: d for d in kw['publisher'].published['RDS_CPU_Metrics']}
    assert (cpu_data['idle'].sum, cpu_data['idle'].sample_count) == (194.0, 2)


def test_handler_custom_interval():
    summary, kw = _run({'instance_id': 'X', 'interval': '5 minutes'})
    assert summary['interval_seconds'] == 300
    assert kw['log_source'].calls[0][1] == int(NOW * 1000) - 300_000


def test_resource_id_cached_across_invocations():
    cache = ResourceIdCache()
    resolver = FakeResolver()
    _run({'instance_id': 'X'}, cache=cache, resolver=resolver)
    _run({'instance_id': 'X'}, cache=cache, resolver=resolver)
    assert resolver.calls == ['X']
    assert cache.snapshot() == {'X': 'db-RESOURCE'}


def test_no_events_publishes_nothing():
    summary, kw = _run({'instance_id': 'X'}, log_source=FakeSource([]))
    assert summary['published'] == {'RDS_OS_Metrics': 0, 'RDS_CPU_Metrics': 0}
    assert kw['publisher'].published == {}


@pytest.mark.parametrize('event', [{}, {'instance_id': ''}, {'instance_id': 5}, 'db-1', {'instance_id': 'X', 'interval': 60}])
def test_invalid_invocation(event):
    with pytest.raises(invocation.InvalidInvocation):
        _run(event)


def test_bad_interval_raises():
    with pytest.raises(DurationParseError):
        _run({'instance_id': 'X', 'interval': 'whenever'})


def test_collaborator_failure_is_logged_and_reraised(caplog):
    resolver = FakeResolver(error=RuntimeError('AccessDenied'))
    with caplog.at_level(logging.ERROR, logger='rds_os_metrics'):
        with pytest.raises(RuntimeError, match='AccessDenied'):
            _run({'instance_id': 'X'}, resolver=resolver)
    assert any('AccessDenied' in r.getMessage() for r in caplog.records)


def test_failed_pass_does_not_block_other_pass():
    publisher = RecordingPublisher(fail_namespace='RDS_OS_Metrics')
    with pytest.raises(RuntimeError, match='RDS_OS_Metrics rejected'):
        _run({'instance_id': 'X'}, publisher=publisher)
    assert set(publisher.published) == {'RDS_CPU_Metrics'}


def test_default_publisher_selection(monkeypatch):
    monkeypatch.setenv('RDS_METRICS_PUBLISHER', 'cloudwatch')
    assert type(invocation.default_publisher()).__name__ == 'CloudWatchPublisher'
    monkeypatch.setenv('RDS_METRICS_PUBLISHER', 'timescale')
    monkeypatch.delenv('TIMESCALE_DSN', raising=False)
    assert type(invocation.default_publisher()).__name__ == 'TimescaleMetricPublisher'
    monkeypatch.setenv('RDS_METRICS_PUBLISHER', 'statsd')
    with pytest.raises(invocation.InvalidInvocation):
        invocation.default_publisher()


def _timescale_default(monkeypatch, conn):
    monkeypatch.setattr(invocation, 'default_publisher', lambda: TimescaleMetricPublisher(conn=conn, use_copy=False))


def test_handler_closes_publisher_it_created(monkeypatch):
    conn = FakeConn()
    _timescale_default(monkeypatch, conn)
    summary, _ = _run({'instance_id': 'X'}, publisher=None)
    assert summary['published'] == {'RDS_OS_Metrics': 2, 'RDS_CPU_Metrics': 2}
    assert len(conn.rows) == 4
    assert conn.closed is True


def test_handler_closes_created_publisher_when_publish_fails(monkeypatch):
    conn = FakeConn(fail=True)
    _timescale_default(monkeypatch, conn)
    with pytest.raises(RuntimeError):
        _run({'instance_id': 'X'}, publisher=None)
    assert conn.closed is True


def test_handler_leaves_injected_publisher_open():
    conn = FakeConn()
    publisher = TimescaleMetricPublisher(conn=conn, use_copy=False)
    _run({'instance_id': 'X'}, publisher=publisher)
    _run({'instance_id': 'X'}, publisher=publisher)
    assert len(conn.rows) == 8
    assert conn.closed is False
    assert publisher.stats()['connected'] is True
