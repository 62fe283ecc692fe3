"""Enhanced Monitoring log record parser.

Each CloudWatch Logs event in the ``RDSOSMetrics`` group carries one JSON
document describing an OS snapshot. Only two top-level fields matter here:

    processList     list of {"name": ..., "cpuUsedPc": ..., "memoryUsedPc": ...}
    cpuUtilization  {"user": ..., "system": ..., "idle": ..., "total": ..., ...}

Both are required. A present-but-null field counts as empty. Anything else in
the document (memory, disks, network, loadAverageMinute ...) is ignored.

Numeric coercion keeps the established text-to-float rule: numbers pass
through, strings contribute their leading numeric prefix ("12.5%" -> 12.5,
"abc" -> 0.0) and everything else is 0.0. Non-finite results ("1e999")
are 0.0 as well; the bare JSON tokens NaN and Infinity are rejected outright. A process at 0% and a process with a
missing field are therefore indistinguishable; downstream values depend on
this, so it is pinned by tests rather than tightened.
"""
from __future__ import annotations
import json, math, re
from dataclasses import dataclass
from typing import Any, Dict, Tuple, Union

LEADING_FLOAT_RE = re.compile(r"^\s*([+-]?(?:\d[\d_]*(?:\.\d+)?|\.\d+)(?:[eE][+-]?\d+)?)")

REQUIRED_FIELDS = ('processList', 'cpuUtilization')


class MalformedRecord(ValueError):
    """Log payload that cannot be decoded into a LogRecord."""


@dataclass(frozen=True)
class RawLogEvent:
    timestamp_ms: int
    message: Union[str, bytes]


@dataclass(frozen=True)
class ProcessSample:
    name: str
    cpu_used_percent: float
    memory_used_percent: float


@dataclass(frozen=True)
class LogRecord:
    timestamp_ms: int
    process_list: Tuple[ProcessSample, ...]
    cpu_utilization: Tuple[Tuple[str, float], ...]

    @property
    def cpu_map(self) -> Dict[str, float]:
        return dict(self.cpu_utilization)


def _reject_constant(token: str):
    raise ValueError(f'non-finite constant {token}')


def to_float(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        try:
            result = float(value)
        except OverflowError:
            return 0.0
    elif isinstance(value, str):
        m = LEADING_FLOAT_RE.match(value)
        if not m:
            return 0.0
        try:
            result = float(m.group(1).replace('_', ''))
        except ValueError:
            return 0.0
    else:
        return 0.0
    return result if math.isfinite(result) else 0.0


class LogRecordParser:
    def parse(self, raw: Union[str, bytes], timestamp_ms: int) -> LogRecord:
        if isinstance(raw, (bytes, bytearray)):
            try:
                raw = raw.decode('utf-8')
            except UnicodeDecodeError as e:
                raise MalformedRecord(f'payload is not utf-8: {e}') from e
        try:
            data = json.loads(raw, parse_constant=_reject_constant)
        except (TypeError, ValueError) as e:
            raise MalformedRecord(f'payload is not JSON: {e}') from e
        if not isinstance(data, dict):
            raise MalformedRecord(f'payload is {type(data).__name__}, expected object')
        missing = [f for f in REQUIRED_FIELDS if f not in data]
        if missing:
            raise MalformedRecord(f'missing required fields: {",".join(missing)}')

        processes = data['processList']
        if processes is None:
            processes = []
        if not isinstance(processes, list):
            raise MalformedRecord('processList is not a list')
        samples = []
        for entry in processes:
            if not isinstance(entry, dict):
                raise MalformedRecord('processList entry is not an object')
            name = entry.get('name')
            samples.append(ProcessSample(
                name='' if name is None else str(name),
                cpu_used_percent=to_float(entry.get('cpuUsedPc')),
                memory_used_percent=to_float(entry.get('memoryUsedPc')),
            ))

        cpu = data['cpuUtilization']
        if cpu is None:
            cpu = {}
        if not isinstance(cpu, dict):
            raise MalformedRecord('cpuUtilization is not an object')
        cpu_items = tuple((str(k), to_float(v)) for k, v in cpu.items())

        return LogRecord(int(timestamp_ms), tuple(samples), cpu_items)


__all__ = ["LogRecordParser", "LogRecord", "ProcessSample", "RawLogEvent", "MalformedRecord", "to_float"]
