"""Dimension keys and streaming statistics.

A :class:`DimensionKey` is an ordered tuple of ``(name, value)`` pairs. The
final pair is always ``metric=<metric name>``; everything before it becomes the
dimension list of the published statistic. Keys are frozen dataclasses so two
independently built keys with the same pairs hash and compare equal.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Tuple

INSTANCE_DIMENSION = 'rds_instance'
SERVICE_DIMENSION = 'service'
METRIC_DIMENSION = 'metric'


class EmptyAggregate(ValueError):
    """Statistic requested from an accumulator that never saw a value."""


@dataclass(frozen=True)
class DimensionKey:
    pairs: Tuple[Tuple[str, str], ...]

    def with_pair(self, name: str, value: str) -> "DimensionKey":
        return DimensionKey(self.pairs + ((name, value),))

    @property
    def metric_name(self) -> str:
        return self.pairs[-1][1]

    @property
    def dimensions(self) -> Tuple[Tuple[str, str], ...]:
        return self.pairs[:-1]

    def get(self, name: str, default=None):
        for k, v in self.pairs:
            if k == name:
                return v
        return default


def process_key(instance_id: str, service: str, metric: str) -> DimensionKey:
    """[rds_instance, service, metric] key used by the process pass."""
    return DimensionKey((
        (INSTANCE_DIMENSION, instance_id),
        (SERVICE_DIMENSION, service),
        (METRIC_DIMENSION, metric),
    ))


def cpu_key(instance_id: str, metric: str) -> DimensionKey:
    """[rds_instance, metric] key used by the CPU utilization pass."""
    return DimensionKey((
        (INSTANCE_DIMENSION, instance_id),
        (METRIC_DIMENSION, metric),
    ))


class StatAccumulator:
    __slots__ = ('count', 'sum', 'min', 'max')

    def __init__(self):
        self.count = 0
        self.sum = 0.0
        self.min = float('inf')
        self.max = float('-inf')

    def update(self, value: float) -> None:
        self.count += 1
        self.sum += value
        if value < self.min:
            self.min = value
        if value > self.max:
            self.max = value

    def mean(self) -> float:
        if self.count == 0:
            raise EmptyAggregate('mean of empty accumulator')
        return self.sum / self.count

    def merge(self, other: "StatAccumulator") -> "StatAccumulator":
        """Combine two accumulators for the same key into a new one.

        Counts and sums add, min of mins, max of maxes. An empty accumulator is
        the identity since its sentinels never win a comparison.
        """
        out = StatAccumulator()
        out.count = self.count + other.count
        out.sum = self.sum + other.sum
        out.min = min(self.min, other.min)
        out.max = max(self.max, other.max)
        return out

    def as_dict(self) -> Dict[str, float]:
        return {'count': self.count, 'sum': self.sum, 'min': self.min, 'max': self.max}

    def __eq__(self, other):
        if not isinstance(other, StatAccumulator):
            return NotImplemented
        return self.as_dict() == other.as_dict()

    def __repr__(self):
        return f'StatAccumulator(count={self.count}, sum={self.sum}, min={self.min}, max={self.max})'


AggregateTable = Dict[DimensionKey, StatAccumulator]


def merge_tables(*tables: AggregateTable) -> AggregateTable:
    merged: AggregateTable = {}
    for table in tables:
        for key, acc in table.items():
            current = merged.get(key)
            merged[key] = acc.merge(StatAccumulator()) if current is None else current.merge(acc)
    return merged


def sorted_items(table: AggregateTable) -> List[Tuple[DimensionKey, StatAccumulator]]:
    """Table items in a stable order (by key pairs) for publishing and logging."""
    return sorted(table.items(), key=lambda kv: kv[0].pairs)


__all__ = [
    "DimensionKey", "StatAccumulator", "EmptyAggregate", "AggregateTable",
    "process_key", "cpu_key", "merge_tables", "sorted_items",
    "INSTANCE_DIMENSION", "SERVICE_DIMENSION", "METRIC_DIMENSION",
]
