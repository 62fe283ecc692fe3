"""Declarative schema and DDL generation for the Timescale publisher.

One table per metric namespace. Dimension columns are the key components
minus the metric name; the statistic columns mirror CloudWatch StatisticValues.
DDL text is deterministic so it can be snapshot-tested.
"""
from __future__ import annotations
import os
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

import psycopg

from .publisher import OS_NAMESPACE, CPU_NAMESPACE
from ..debug_util import dbg

GLOBAL_COLUMNS = [
    ("ts", "TIMESTAMPTZ NOT NULL"),
    ("rds_instance", "TEXT NOT NULL"),
    ("metric_name", "TEXT NOT NULL"),
    ("unit", "TEXT NOT NULL"),
]

STAT_COLUMNS = [
    ("sample_count", "BIGINT NOT NULL"),
    ("sum", "DOUBLE PRECISION NOT NULL"),
    ("minimum", "DOUBLE PRECISION NOT NULL"),
    ("maximum", "DOUBLE PRECISION NOT NULL"),
]


@dataclass(frozen=True)
class StatTable:
    table: str
    namespace: str
    local_labels: List[str]
    unique_key: List[str] = field(default_factory=list)
    indexes: List[List[str]] = field(default_factory=list)

    @property
    def columns(self) -> List[str]:
        return [c for c, _ in GLOBAL_COLUMNS] + list(self.local_labels) + [c for c, _ in STAT_COLUMNS]


SCHEMA_SPEC: Dict[str, StatTable] = {
    OS_NAMESPACE: StatTable(
        table="rds_os_metric_stats",
        namespace=OS_NAMESPACE,
        local_labels=["service"],
        unique_key=["ts", "rds_instance", "service", "metric_name"],
        indexes=[["rds_instance", "ts DESC"], ["service", "ts DESC"]],
    ),
    CPU_NAMESPACE: StatTable(
        table="rds_cpu_metric_stats",
        namespace=CPU_NAMESPACE,
        local_labels=[],
        unique_key=["ts", "rds_instance", "metric_name"],
        indexes=[["rds_instance", "ts DESC"]],
    ),
}


def table_for(namespace: str) -> Optional[StatTable]:
    return SCHEMA_SPEC.get(namespace)


def generate_table_ddl(group: StatTable) -> str:
    cols: List[str] = [f"{name} {decl}" for name, decl in GLOBAL_COLUMNS]
    for lbl in group.local_labels:
        cols.append(f"{lbl} TEXT NOT NULL")
    cols.extend(f"{name} {decl}" for name, decl in STAT_COLUMNS)
    col_sql = ",\n  ".join(cols)
    return f"CREATE TABLE IF NOT EXISTS {group.table} (\n  {col_sql}\n);"


def generate_view_ddl(group: StatTable) -> Iterable[str]:
    """Average view per table: sum / sample_count, as CloudWatch would report it."""
    labels = "".join(f", {lbl}" for lbl in group.local_labels)
    yield (
        f"CREATE OR REPLACE VIEW {group.table}_avg AS SELECT ts, rds_instance{labels}, metric_name, "
        f"sum / NULLIF(sample_count, 0) AS value, minimum, maximum FROM {group.table};"
    )


def _index_name(table: str, cols: List[str], unique: bool = False) -> str:
    base = table + '_' + '_'.join([c.split()[0] for c in cols])
    if unique:
        base = 'uniq_' + base
    return base[:60]


def generate_all_ddls() -> Dict[str, List[str]]:
    tables: List[str] = []
    views: List[str] = []
    indexes: List[str] = []
    for grp in SCHEMA_SPEC.values():
        tables.append(generate_table_ddl(grp))
        views.extend(generate_view_ddl(grp))
        if grp.unique_key:
            idx_name = _index_name(grp.table, grp.unique_key, unique=True)
            indexes.append(f"CREATE UNIQUE INDEX IF NOT EXISTS {idx_name} ON {grp.table} ({','.join(grp.unique_key)});")
        for cols in grp.indexes:
            idx_name = _index_name(grp.table, cols)
            indexes.append(f"CREATE INDEX IF NOT EXISTS {idx_name} ON {grp.table} ({','.join(cols)});")
    return {"tables": tables, "views": views, "indexes": indexes}


def bootstrap_schema(dsn: Optional[str] = None, create_hypertables: bool = True) -> dict:
    """Create tables, views and indexes. Safe to run repeatedly.

    Hypertable conversion is attempted only when the timescaledb extension
    can be created; plain PostgreSQL keeps ordinary tables.
    """
    dsn = dsn or os.environ.get('TIMESCALE_DSN')
    if not dsn:
        return {'enabled': False, 'reason': 'no_dsn'}
    ddls = generate_all_ddls()
    created: List[str] = []
    hypertables = False
    with psycopg.connect(dsn) as conn:
        with conn.cursor() as cur:
            if create_hypertables:
                try:
                    cur.execute("CREATE EXTENSION IF NOT EXISTS timescaledb")
                    conn.commit()
                    hypertables = True
                except psycopg.Error as e:
                    dbg(f'timescale_extension_unavailable err={e.__class__.__name__}:{e}')
                    conn.rollback()
            for stmt in ddls['tables']:
                cur.execute(stmt)
                created.append(stmt.split()[5])
            if hypertables:
                for grp in SCHEMA_SPEC.values():
                    cur.execute(f"SELECT create_hypertable('{grp.table}','ts', if_not_exists => TRUE)")
            for stmt in ddls['views'] + ddls['indexes']:
                cur.execute(stmt)
        conn.commit()
    dbg(f'bootstrap_schema created={created} hypertables={hypertables}')
    return {'enabled': True, 'created': created, 'hypertables': hypertables}


__all__ = ["SCHEMA_SPEC", "StatTable", "table_for", "generate_table_ddl", "generate_view_ddl", "generate_all_ddls", "bootstrap_schema"]
