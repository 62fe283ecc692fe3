"""TimescaleMetricPublisher: aggregate statistics into TimescaleDB/PostgreSQL.

Rows are buffered per table and written in batches, either with
``executemany`` INSERTs or COPY FROM STDIN. Without a DSN the publisher only
counts rows (useful for dry runs and tests).
"""
from __future__ import annotations
import os, time
from typing import Any, Dict, List, Optional, Sequence, Tuple

import psycopg

from .publisher import MetricDatum
from .schema import SCHEMA_SPEC, StatTable, table_for
from ..debug_util import dbg


class TimescaleMetricPublisher:
    def __init__(self, dsn: Optional[str] = None, batch_size: int = 500, use_copy: Optional[bool] = None, conn=None):
        """
        Parameters:
            dsn: PostgreSQL/Timescale connection string (default TIMESCALE_DSN).
            batch_size: rows buffered before an automatic flush. RDS_METRICS_TS_BATCH_SIZE
                overrides the default, never an explicit caller value.
            use_copy: COPY instead of INSERT. None reads RDS_METRICS_TS_USE_COPY.
            conn: already-open psycopg connection (takes precedence over dsn).
        """
        if 'RDS_METRICS_TS_BATCH_SIZE' in os.environ and batch_size == 500:
            batch_size = int(os.environ['RDS_METRICS_TS_BATCH_SIZE'])
        self.batch_size = max(1, batch_size)
        if use_copy is None:
            use_copy = os.environ.get('RDS_METRICS_TS_USE_COPY', '').lower() in ('true', '1', 'yes')
        self.use_copy = use_copy
        self.dsn = dsn or os.environ.get('TIMESCALE_DSN')
        self._conn = conn
        self._pending: Dict[str, List[Tuple[Any, ...]]] = {}
        self.total_rows_added = 0
        self.total_rows_flushed = 0
        self.total_flushes = 0
        self._last_flush_seconds = 0.0

    def _connection(self):
        if self._conn is None and self.dsn:
            self._conn = psycopg.connect(self.dsn)
            dbg('timescale_connect_ok')
        return self._conn

    @staticmethod
    def to_row(grp: StatTable, d: MetricDatum) -> Tuple[Any, ...]:
        dims = dict(d.dimensions)
        row: List[Any] = [d.timestamp, dims.get('rds_instance'), d.metric_name, d.unit]
        row.extend(dims.get(lbl) for lbl in grp.local_labels)
        row.extend([d.sample_count, d.sum, d.minimum, d.maximum])
        return tuple(row)

    def add(self, d: MetricDatum) -> None:
        grp = table_for(d.namespace)
        if grp is None:
            raise ValueError(f'no table for namespace {d.namespace!r}')
        self._pending.setdefault(grp.table, []).append(self.to_row(grp, d))
        self.total_rows_added += 1
        if sum(len(rows) for rows in self._pending.values()) >= self.batch_size:
            self.flush()

    def publish(self, data: Sequence[MetricDatum]) -> int:
        for d in data:
            self.add(d)
        self.flush()
        return len(data)

    def _write(self, conn, grp: StatTable, rows: List[Tuple[Any, ...]]) -> None:
        cols = ','.join(grp.columns)
        with conn.cursor() as cur:
            if self.use_copy:
                with cur.copy(f"COPY {grp.table} ({cols}) FROM STDIN") as copy:
                    for r in rows:
                        copy.write_row(r)
            else:
                placeholders = ','.join(['%s'] * len(grp.columns))
                cur.executemany(f"INSERT INTO {grp.table} ({cols}) VALUES ({placeholders})", rows)
        dbg(f'timescale_write_ok table={grp.table} rows={len(rows)} mode={"copy" if self.use_copy else "insert"}')

    def flush(self) -> None:
        if not self._pending:
            return
        start = time.time()
        conn = self._connection()
        pending, self._pending = self._pending, {}
        if conn is not None:
            try:
                for table, rows in pending.items():
                    grp = next(g for g in SCHEMA_SPEC.values() if g.table == table)
                    self._write(conn, grp, rows)
                conn.commit()
            except Exception as e:
                dbg(f'timescale_flush_fail err={e.__class__.__name__}:{e}')
                conn.rollback()
                raise
        self.total_rows_flushed += sum(len(rows) for rows in pending.values())
        self.total_flushes += 1
        self._last_flush_seconds = time.time() - start

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def stats(self) -> Dict[str, Any]:
        return {
            'total_rows_added': self.total_rows_added,
            'total_rows_flushed': self.total_rows_flushed,
            'total_flushes': self.total_flushes,
            'connected': bool(self._conn),
            'insert_method': 'COPY' if self.use_copy else 'INSERT',
            'batch_size': self.batch_size,
            'last_flush_seconds': round(self._last_flush_seconds, 6),
        }


__all__ = ["TimescaleMetricPublisher"]
