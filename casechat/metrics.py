"""Cache/usage metrics: SQLite persistence, reporting queries, and a best-effort sink."""

import asyncio
import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from casechat.models import CacheMetrics, MetricsRecord

logger = logging.getLogger(__name__)

_GROUP_COLUMNS = {
    "provider": "provider",
    "model": "provider, model_id",
    "case": "case_id",
    "request_type": "request_type",
    "day": "substr(created_at, 1, 10)",
}

_AGGREGATES = """
    COUNT(*) AS total_requests,
    COALESCE(SUM(cache_hit), 0) AS cache_hits,
    COALESCE(ROUND(100.0 * SUM(cache_hit) / NULLIF(COUNT(*), 0), 2), 0) AS hit_rate_percent,
    COALESCE(SUM(input_tokens), 0) AS total_input_tokens,
    COALESCE(SUM(cached_tokens), 0) AS total_cached_tokens,
    COALESCE(SUM(output_tokens), 0) AS total_output_tokens
"""


class MetricsStore:
    """One row per LLM call in the llm_cache_metrics table."""

    def __init__(
        self,
        db_path: Path,
        regular_cost_per_1k: float = 0.003,
        cached_cost_per_1k: float = 0.0003,
    ) -> None:
        self.db_path = Path(db_path)
        self.regular_cost_per_1k = regular_cost_per_1k
        self.cached_cost_per_1k = cached_cost_per_1k
        self._initialized = False

    def _get_connection(self) -> sqlite3.Connection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        if not self._initialized:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS llm_cache_metrics (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    case_id TEXT NOT NULL,
                    provider TEXT NOT NULL,
                    model_id TEXT NOT NULL,
                    cache_hit INTEGER NOT NULL DEFAULT 0,
                    input_tokens INTEGER NOT NULL DEFAULT 0,
                    cached_tokens INTEGER NOT NULL DEFAULT 0,
                    output_tokens INTEGER NOT NULL DEFAULT 0,
                    request_type TEXT NOT NULL DEFAULT 'chat',
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_metrics_case ON llm_cache_metrics (case_id, created_at)"
            )
            conn.commit()
            self._initialized = True
        return conn

    def insert(self, record: MetricsRecord, created_at: datetime | None = None) -> None:
        created = (created_at or datetime.now(timezone.utc)).isoformat()
        metrics = record.cache_metrics
        conn = self._get_connection()
        try:
            with conn:
                conn.execute(
                    """
                    INSERT INTO llm_cache_metrics
                        (case_id, provider, model_id, cache_hit, input_tokens,
                         cached_tokens, output_tokens, request_type, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record.case_id,
                        record.provider,
                        record.model_id,
                        1 if metrics.cache_hit else 0,
                        metrics.input_tokens,
                        metrics.cached_tokens,
                        metrics.output_tokens,
                        record.request_type,
                        created,
                    ),
                )
        finally:
            conn.close()

    def _query(self, sql: str, params: tuple) -> list[dict[str, Any]]:
        conn = self._get_connection()
        try:
            return [dict(row) for row in conn.execute(sql, params).fetchall()]
        finally:
            conn.close()

    @staticmethod
    def _where(days: int, case_id: str | None, now: datetime | None) -> tuple[str, tuple]:
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days)
        clauses = ["created_at >= ?"]
        params: list[Any] = [cutoff.isoformat()]
        if case_id is not None:
            clauses.append("case_id = ?")
            params.append(case_id)
        return " AND ".join(clauses), tuple(params)

    def summary(
        self,
        days: int = 30,
        case_id: str | None = None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Totals and hit rate over the last `days`, plus estimated savings in USD."""
        where, params = self._where(days, case_id, now)
        row = self._query(f"SELECT {_AGGREGATES} FROM llm_cache_metrics WHERE {where}", params)[0]
        savings = (row["total_cached_tokens"] / 1000) * (
            self.regular_cost_per_1k - self.cached_cost_per_1k
        )
        row["estimated_savings_usd"] = round(savings, 4)
        row["days_analyzed"] = days
        return row

    def breakdown(
        self,
        group_by: str,
        days: int = 30,
        case_id: str | None = None,
        now: datetime | None = None,
    ) -> list[dict[str, Any]]:
        """Aggregates grouped by provider, model, case, request_type or day."""
        if group_by not in _GROUP_COLUMNS:
            raise ValueError(
                f"Unknown group_by '{group_by}', expected one of: {', '.join(_GROUP_COLUMNS)}"
            )
        columns = _GROUP_COLUMNS[group_by]
        select_columns = "substr(created_at, 1, 10) AS day" if group_by == "day" else columns
        order = "day DESC" if group_by == "day" else "total_requests DESC"
        where, params = self._where(days, case_id, now)
        sql = (
            f"SELECT {select_columns}, {_AGGREGATES} FROM llm_cache_metrics "
            f"WHERE {where} GROUP BY {columns} ORDER BY {order}"
        )
        return self._query(sql, params)

    def recent(self, case_id: str, limit: int = 50) -> list[dict[str, Any]]:
        return self._query(
            """
            SELECT id, provider, model_id, cache_hit, request_type,
                   input_tokens, cached_tokens, output_tokens, created_at
            FROM llm_cache_metrics
            WHERE case_id = ?
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            (case_id, limit),
        )


class MetricsSink:
    """Fire-and-forget persistence of per-call cache metrics.

    track() schedules the write as a detached task and returns immediately.
    A failed write is logged and dropped; it never reaches the caller.
    """

    def __init__(self, store: MetricsStore) -> None:
        self._store = store
        self._pending: set[asyncio.Task] = set()

    def track(
        self,
        case_id: str | None,
        provider: str,
        model_id: str,
        cache_metrics: CacheMetrics | None,
        request_type: str = "chat",
    ) -> asyncio.Task | None:
        if not case_id or cache_metrics is None:
            return None
        record = MetricsRecord(
            case_id=case_id,
            provider=provider,
            model_id=model_id,
            cache_metrics=cache_metrics,
            request_type=request_type,
        )
        task = asyncio.get_running_loop().create_task(self._write(record))
        # Keep a strong reference until the task finishes.
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _write(self, record: MetricsRecord) -> None:
        try:
            await asyncio.to_thread(self._store.insert, record)
        except Exception as exc:
            logger.warning("Failed to track cache metrics for case %s: %s", record.case_id, exc)

    async def drain(self) -> None:
        """Wait for every scheduled write to finish."""
        if self._pending:
            await asyncio.gather(*self._pending)
