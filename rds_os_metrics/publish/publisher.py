"""Turning finished aggregate tables into publishable statistics.

Every (key, accumulator) pair becomes one :class:`MetricDatum`:

    namespace     RDS_OS_Metrics (process pass) | RDS_CPU_Metrics (cpu pass)
    metric_name   final key component value
    dimensions    every key component except the final one
    statistic     (sample_count = records in the pass, sum, minimum, maximum)
    unit          Percent

Accumulators that never saw a value are skipped; their min/max are sentinels.
"""
from __future__ import annotations
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

import boto3

from ..aggregation.engine import PassResult
from ..aggregation.stats import sorted_items
from ..debug_util import dbg

OS_NAMESPACE = 'RDS_OS_Metrics'
CPU_NAMESPACE = 'RDS_CPU_Metrics'
UNIT = 'Percent'


@dataclass(frozen=True)
class MetricDatum:
    namespace: str
    metric_name: str
    timestamp: datetime
    sample_count: int
    sum: float
    minimum: float
    maximum: float
    dimensions: Tuple[Tuple[str, str], ...]
    unit: str = UNIT

    @property
    def average(self) -> float:
        return self.sum / self.sample_count


class MetricPublisher(Protocol):
    def publish(self, data: Sequence[MetricDatum]) -> int: ...


def build_metric_data(namespace: str, result: PassResult, timestamp: datetime) -> List[MetricDatum]:
    if result.record_count <= 0:
        return []
    data: List[MetricDatum] = []
    for key, acc in sorted_items(result.table):
        if acc.count == 0:
            continue
        data.append(MetricDatum(
            namespace=namespace,
            metric_name=key.metric_name,
            timestamp=timestamp,
            sample_count=result.record_count,
            sum=acc.sum,
            minimum=acc.min,
            maximum=acc.max,
            dimensions=key.dimensions,
        ))
    return data


def _chunks(items: List[MetricDatum], size: int) -> Iterable[List[MetricDatum]]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


class CloudWatchPublisher:
    def __init__(self, client=None, batch_size: Optional[int] = None, region_name: Optional[str] = None):
        """CloudWatch ``put_metric_data`` publisher.

        Parameters:
            client: boto3 CloudWatch client; created lazily when omitted.
            batch_size: datums per call. Falls back to RDS_METRICS_PUT_BATCH_SIZE, then 20.
        """
        if batch_size is None:
            batch_size = int(os.environ.get('RDS_METRICS_PUT_BATCH_SIZE', '20'))
        self.batch_size = max(1, batch_size)
        self._client = client
        self.region_name = region_name
        self.total_calls = 0

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client('cloudwatch', region_name=self.region_name)
        return self._client

    @staticmethod
    def to_metric_datum(d: MetricDatum) -> Dict:
        return {
            'MetricName': d.metric_name,
            'Dimensions': [{'Name': n, 'Value': v} for n, v in d.dimensions],
            'Timestamp': d.timestamp,
            'StatisticValues': {
                'SampleCount': float(d.sample_count),
                'Sum': d.sum,
                'Minimum': d.minimum,
                'Maximum': d.maximum,
            },
            'Unit': d.unit,
        }

    def publish(self, data: Sequence[MetricDatum]) -> int:
        per_namespace: Dict[str, List[MetricDatum]] = {}
        for d in data:
            per_namespace.setdefault(d.namespace, []).append(d)
        sent = 0
        for namespace, items in per_namespace.items():
            for chunk in _chunks(items, self.batch_size):
                self.client.put_metric_data(
                    Namespace=namespace,
                    MetricData=[self.to_metric_datum(d) for d in chunk],
                )
                self.total_calls += 1
                sent += len(chunk)
                dbg(f'put_metric_data namespace={namespace} datums={len(chunk)}')
        return sent


__all__ = [
    "MetricDatum", "MetricPublisher", "CloudWatchPublisher", "build_metric_data",
    "OS_NAMESPACE", "CPU_NAMESPACE", "UNIT",
]
