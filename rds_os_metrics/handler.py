"""Invocation entrypoint (Lambda-style ``handler(event, context)``).

Event input:
    instance_id   database instance identifier (required)
    interval      human readable duration to aggregate over (default "1 minute")

Flow: resolve the instance's DbiResourceId (cached for the life of the
process), fetch the Enhanced Monitoring events newer than now - interval, run
both aggregation passes and publish each pass. Collaborator failures are
logged and re-raised so the scheduler sees a failed invocation.
"""
from __future__ import annotations
import os, time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from .aggregation.engine import AggregationEngine
from .collectors.aws import CloudWatchLogSource, RdsInstanceResolver
from .collectors.cache import ResourceIdCache
from .collectors.duration import parse_duration
from .publish.publisher import CloudWatchPublisher, CPU_NAMESPACE, OS_NAMESPACE, build_metric_data
from .debug_util import dbg, get_logger

DEFAULT_INTERVAL = os.environ.get('RDS_METRICS_DEFAULT_INTERVAL', '1 minute')

# Shared across warm invocations of the same runtime; saves one
# describe_db_instances call per invocation.
RESOURCE_ID_CACHE = ResourceIdCache()


class InvalidInvocation(ValueError):
    pass


def default_publisher():
    kind = os.environ.get('RDS_METRICS_PUBLISHER', 'cloudwatch').lower()
    if kind == 'cloudwatch':
        return CloudWatchPublisher()
    if kind == 'timescale':
        from .publish.timescale import TimescaleMetricPublisher
        return TimescaleMetricPublisher()
    raise InvalidInvocation(f'unknown RDS_METRICS_PUBLISHER {kind!r}')


def _parse_event(event) -> Dict[str, str]:
    if not isinstance(event, dict):
        raise InvalidInvocation('event must be an object')
    instance_id = event.get('instance_id')
    if not isinstance(instance_id, str) or not instance_id:
        raise InvalidInvocation('instance_id is required')
    interval = event.get('interval') or DEFAULT_INTERVAL
    if not isinstance(interval, str):
        raise InvalidInvocation('interval must be a string')
    return {'instance_id': instance_id, 'interval': interval}


def handler(event, context=None, *, cache: Optional[ResourceIdCache] = None, resolver=None, log_source=None,
            publisher=None, clock: Callable[[], float] = time.time) -> Dict[str, Any]:
    logger = get_logger()
    cache = RESOURCE_ID_CACHE if cache is None else cache
    logger.info('event: %r', event)
    logger.info('resource id cache: %r', cache.snapshot())
    try:
        params = _parse_event(event)
        instance_id = params['instance_id']
        interval_seconds = parse_duration(params['interval'])

        resource_id = cache.get_or_resolve(instance_id, resolver or RdsInstanceResolver())
        now = clock()
        since_ms = int((now - interval_seconds) * 1000)
        source = log_source or CloudWatchLogSource()
        engine = AggregationEngine(instance_id)
        report = engine.run(source.fetch(resource_id, since_ms))
        dbg(f'aggregated instance={instance_id} events={report.events} rejected={report.rejected}')

        # publishers passed in by the caller stay open; ones built here are closed
        owned = publisher is None
        sink = default_publisher() if owned else publisher
        try:
            published = _publish_passes(
                sink,
                datetime.fromtimestamp(now, tz=timezone.utc),
                ((OS_NAMESPACE, report.processes), (CPU_NAMESPACE, report.cpu)),
            )
        finally:
            if owned and hasattr(sink, 'close'):
                sink.close()
        return {
            'instance_id': instance_id,
            'resource_id': resource_id,
            'interval': params['interval'],
            'interval_seconds': interval_seconds,
            'since_ms': since_ms,
            'events': report.events,
            'records': report.processes.record_count,
            'rejected': report.rejected,
            'published': published,
        }
    except Exception as e:
        logger.exception('Exception: %s', e)
        raise


def _publish_passes(publisher, timestamp: datetime, passes) -> Dict[str, int]:
    """Publish each pass independently; re-raise the first failure afterwards."""
    published: Dict[str, int] = {}
    first_error: Optional[BaseException] = None
    for namespace, result in passes:
        try:
            data = build_metric_data(namespace, result, timestamp)
            published[namespace] = publisher.publish(data) if data else 0
        except Exception as e:
            get_logger().error('publish failed namespace=%s: %s', namespace, e)
            published[namespace] = 0
            if first_error is None:
                first_error = e
    if first_error is not None:
        raise first_error
    return published


__all__ = ["handler", "InvalidInvocation", "RESOURCE_ID_CACHE", "DEFAULT_INTERVAL", "default_publisher"]
