"""
Usage ledger repository.

SQLite implementation of the UsageRepository contract. Queries run in a
worker thread on a fresh connection per call.
"""

import asyncio
from datetime import datetime, timezone
from typing import Callable, List, Optional

from .db import DEFAULT_DB_PATH, get_connection
from .models import UsageRecord
from ..events.base import utcnow
from ..ports import UsagePeriod


def period_start(period: UsagePeriod, now: datetime) -> datetime:
    """Start of the UTC day or month containing ``now``."""
    now = now.astimezone(timezone.utc)
    start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period is UsagePeriod.MONTH:
        start = start.replace(day=1)
    return start


class SqliteUsageRepository:
    """Append-only usage ledger backed by SQLite.

    Timestamps are stored as UTC ISO-8601 strings so that range filters can
    compare them lexicographically.
    """

    def __init__(
        self,
        db_path: str = DEFAULT_DB_PATH,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize the repository.

        Args:
            db_path: Path to SQLite database file
            clock: Source of "now" for period boundaries
        """
        self.db_path = db_path
        self.clock = clock

    async def create(self, record: UsageRecord) -> None:
        await asyncio.to_thread(self._insert, record)

    async def get_total_cost_by_user(self, user_id: str, period: UsagePeriod) -> float:
        return await asyncio.to_thread(self._total_cost, period, user_id)

    async def get_total_cost_global(self, period: UsagePeriod) -> float:
        return await asyncio.to_thread(self._total_cost, period, None)

    def fetch_recent(self, user_id: Optional[str] = None, limit: int = 100) -> List[UsageRecord]:
        """Fetch recent records, newest first, optionally for one user."""
        conn = get_connection(self.db_path)
        try:
            query = "SELECT * FROM llm_usage"
            params: list = []
            if user_id:
                query += " WHERE user_id = ?"
                params.append(user_id)
            query += " ORDER BY timestamp DESC LIMIT ?"
            params.append(limit)
            return [_row_to_record(row) for row in conn.execute(query, params).fetchall()]
        finally:
            conn.close()

    def _insert(self, record: UsageRecord) -> None:
        conn = get_connection(self.db_path)
        try:
            conn.execute("""
                INSERT INTO llm_usage
                (timestamp, provider, model, input_tokens, output_tokens,
                 cost, currency, user_id, conversation_id, prompt_key)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                _to_utc_iso(record.timestamp),
                record.provider,
                record.model,
                record.input_tokens,
                record.output_tokens,
                record.cost,
                record.currency,
                record.user_id,
                record.conversation_id,
                record.prompt_key,
            ))
            conn.commit()
        finally:
            conn.close()

    def _total_cost(self, period: UsagePeriod, user_id: Optional[str]) -> float:
        conn = get_connection(self.db_path)
        try:
            query = "SELECT SUM(cost) FROM llm_usage WHERE timestamp >= ?"
            params = [_to_utc_iso(period_start(period, self.clock()))]
            if user_id is not None:
                query += " AND user_id = ?"
                params.append(user_id)
            row = conn.execute(query, params).fetchone()
            return float(row[0] or 0.0)
        finally:
            conn.close()


def _to_utc_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _row_to_record(row) -> UsageRecord:
    return UsageRecord(
        provider=row["provider"],
        model=row["model"],
        input_tokens=row["input_tokens"],
        output_tokens=row["output_tokens"],
        cost=row["cost"],
        currency=row["currency"],
        user_id=row["user_id"],
        conversation_id=row["conversation_id"],
        prompt_key=row["prompt_key"],
        timestamp=datetime.fromisoformat(row["timestamp"]),
    )
