"""Two-pass aggregation over one window of Enhanced Monitoring records.

Pass A (processes) groups per-process CPU / memory percentages by
[rds_instance, service, metric]. Pass B (cpu) groups the instance-wide
cpuUtilization fields by [rds_instance, metric]. The passes stay separate
because they feed different namespaces with different dimension shapes.

Each pass counts records, not observations. That count is published as the
sample count for every key of the pass so sum / sample_count keeps meaning
"average over the interval" even when several processes share a category.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from .classifier import ProcessClassifier
from .parser import LogRecordParser, LogRecord, MalformedRecord, RawLogEvent
from .stats import AggregateTable, StatAccumulator, process_key, cpu_key
from ..debug_util import dbg, get_logger

CPU_METRIC = 'CPU'
MEMORY_METRIC = 'Memory'


@dataclass
class DecodedBatch:
    records: List[LogRecord] = field(default_factory=list)
    rejected: int = 0


@dataclass
class PassResult:
    table: AggregateTable
    record_count: int


@dataclass
class AggregationReport:
    processes: PassResult
    cpu: PassResult
    rejected: int
    events: int


class AggregationEngine:
    def __init__(self, instance_id: str, classifier: Optional[ProcessClassifier] = None, parser: Optional[LogRecordParser] = None):
        self.instance_id = instance_id
        self.classifier = classifier or ProcessClassifier()
        self.parser = parser or LogRecordParser()

    def decode(self, events: Iterable[RawLogEvent]) -> DecodedBatch:
        """Parse raw events, skipping (and counting) malformed payloads."""
        batch = DecodedBatch()
        for ev in events:
            try:
                batch.records.append(self.parser.parse(ev.message, ev.timestamp_ms))
            except MalformedRecord as e:
                batch.rejected += 1
                get_logger().warning('skipping malformed record instance=%s ts=%s: %s', self.instance_id, ev.timestamp_ms, e)
        dbg(f'decode instance={self.instance_id} records={len(batch.records)} rejected={batch.rejected}')
        return batch

    def aggregate_processes(self, records: Sequence[LogRecord]) -> PassResult:
        table: AggregateTable = {}
        record_count = 0
        for rec in records:
            for proc in rec.process_list:
                service = self.classifier.classify(proc.name)
                self._update(table, process_key(self.instance_id, service, CPU_METRIC), proc.cpu_used_percent)
                self._update(table, process_key(self.instance_id, service, MEMORY_METRIC), proc.memory_used_percent)
            record_count += 1
        dbg(f'aggregate_processes instance={self.instance_id} records={record_count} keys={len(table)}')
        return PassResult(table, record_count)

    def aggregate_cpu(self, records: Sequence[LogRecord]) -> PassResult:
        table: AggregateTable = {}
        record_count = 0
        for rec in records:
            for name, value in rec.cpu_utilization:
                self._update(table, cpu_key(self.instance_id, name), value)
            record_count += 1
        dbg(f'aggregate_cpu instance={self.instance_id} records={record_count} keys={len(table)}')
        return PassResult(table, record_count)

    def run(self, events: Iterable[RawLogEvent]) -> AggregationReport:
        events = list(events)
        batch = self.decode(events)
        return AggregationReport(
            processes=self.aggregate_processes(batch.records),
            cpu=self.aggregate_cpu(batch.records),
            rejected=batch.rejected,
            events=len(events),
        )

    @staticmethod
    def _update(table: AggregateTable, key, value: float) -> None:
        acc = table.get(key)
        if acc is None:
            acc = table[key] = StatAccumulator()
        acc.update(value)


__all__ = ["AggregationEngine", "AggregationReport", "PassResult", "DecodedBatch", "CPU_METRIC", "MEMORY_METRIC"]
