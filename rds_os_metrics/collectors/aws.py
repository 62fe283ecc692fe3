"""boto3 collaborators: instance metadata lookup and Enhanced Monitoring log fetch.

Clients are created lazily so constructing these objects (e.g. at import time
of the handler module) never needs credentials; tests inject fake clients.
"""
from __future__ import annotations
import os
from typing import Iterator, Optional, Protocol

import boto3

from ..aggregation.parser import RawLogEvent
from ..debug_util import dbg

LOG_GROUP = os.environ.get('RDS_METRICS_LOG_GROUP', 'RDSOSMetrics')


class InstanceNotFound(LookupError):
    pass


class InstanceResolver(Protocol):
    def resolve(self, instance_id: str) -> str: ...


class LogSource(Protocol):
    def fetch(self, stream_name: str, since_ms: int) -> Iterator[RawLogEvent]: ...


class RdsInstanceResolver:
    def __init__(self, client=None, region_name: Optional[str] = None):
        self._client = client
        self.region_name = region_name

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client('rds', region_name=self.region_name)
        return self._client

    def resolve(self, instance_id: str) -> str:
        """Return the DbiResourceId (the log stream name) of ``instance_id``."""
        resp = self.client.describe_db_instances(DBInstanceIdentifier=instance_id)
        instances = resp.get('DBInstances') or []
        if not instances or not instances[0].get('DbiResourceId'):
            raise InstanceNotFound(f'no DB instance found for {instance_id!r}')
        rid = instances[0]['DbiResourceId']
        dbg(f'describe_db_instances instance={instance_id} resource_id={rid}')
        return rid


class CloudWatchLogSource:
    def __init__(self, client=None, log_group: Optional[str] = None, region_name: Optional[str] = None):
        self._client = client
        self.log_group = log_group or LOG_GROUP
        self.region_name = region_name

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client('logs', region_name=self.region_name)
        return self._client

    def fetch(self, stream_name: str, since_ms: int) -> Iterator[RawLogEvent]:
        """Yield events of ``stream_name`` newer than ``since_ms``, oldest first.

        get_log_events returns the same nextForwardToken once the end of the
        stream is reached; that is the stop condition.
        """
        kwargs = {
            'logGroupName': self.log_group,
            'logStreamName': stream_name,
            'startTime': int(since_ms),
            'startFromHead': True,
        }
        pages = 0
        total = 0
        while True:
            resp = self.client.get_log_events(**kwargs)
            pages += 1
            events = resp.get('events') or []
            for ev in events:
                total += 1
                yield RawLogEvent(int(ev['timestamp']), ev['message'])
            token = resp.get('nextForwardToken')
            if not token or token == kwargs.get('nextToken') or not events:
                break
            kwargs['nextToken'] = token
        dbg(f'get_log_events group={self.log_group} stream={stream_name} since={since_ms} pages={pages} events={total}')


__all__ = ["RdsInstanceResolver", "CloudWatchLogSource", "InstanceResolver", "LogSource", "InstanceNotFound", "LOG_GROUP"]
