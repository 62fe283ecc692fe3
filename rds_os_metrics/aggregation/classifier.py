"""Process name -> service category classification.

RDS Enhanced Monitoring reports one entry per process (or process group) in
``processList``. Names look like ``postgres: postgres mydb 10.0.0.1(5432) idle``,
``postgres: aurora runtime process``, ``Aurora Storage Daemon`` or the two
rollup rows ``RDS processes`` / ``OS processes``.

Rules are evaluated as a waterfall, first match wins. The more specific
``postgres: <user>`` prefixes must stay ahead of the generic ``postgres: ``
prefix or every backend would land in ``postgres-background``.
"""
from __future__ import annotations
from typing import Callable, List, Tuple

from ..debug_util import get_logger

POSTGRES = 'postgres'
POSTGRES_AURORA = 'postgres-aurora'
POSTGRES_BACKGROUND = 'postgres-background'
AURORA_STORAGE = 'aurora-storage'
RDS_PROCESSES = 'rds-processes'
OS_PROCESSES = 'os-processes'
UNKNOWN = 'unknown'

SERVICE_CATEGORIES = (
    POSTGRES, POSTGRES_AURORA, POSTGRES_BACKGROUND, AURORA_STORAGE,
    RDS_PROCESSES, OS_PROCESSES, UNKNOWN,
)


def _exact(*names: str) -> Callable[[str], bool]:
    return lambda name: name in names


def _prefix(*prefixes: str) -> Callable[[str], bool]:
    return lambda name: name.startswith(prefixes)


def _any(*matchers: Callable[[str], bool]) -> Callable[[str], bool]:
    return lambda name: any(m(name) for m in matchers)


CLASSIFICATION_RULES: List[Tuple[Callable[[str], bool], str]] = [
    (_any(_exact('postgres'), _prefix('postgres: postgres')), POSTGRES),
    (_prefix('postgres: rdsadmin', 'postgres: aurora'), POSTGRES_AURORA),
    (_any(_prefix('postgres: '), _exact('pg_controldata')), POSTGRES_BACKGROUND),
    (_exact('Aurora Storage Daemon'), AURORA_STORAGE),
    (_exact('RDS processes'), RDS_PROCESSES),
    (_exact('OS processes'), OS_PROCESSES),
]


def classify(name: str) -> str:
    """Return the service category for a raw process name (pure, no logging)."""
    for matches, category in CLASSIFICATION_RULES:
        if matches(name):
            return category
    return UNKNOWN


class ProcessClassifier:
    """Classifier used by the aggregation engine.

    Wraps :func:`classify` and emits a diagnostic for names no rule matches.
    The sample is still aggregated under ``unknown``.
    """

    def classify(self, name: str) -> str:
        category = classify(name)
        if category == UNKNOWN:
            get_logger().warning("Can't figure out what this process is: %s", name)
        return category


__all__ = ["ProcessClassifier", "classify", "SERVICE_CATEGORIES", "UNKNOWN"]
