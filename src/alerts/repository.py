"""PostgreSQL storage for thresholds, rules, and alerts.

Implements ``AlertStorage`` with asyncpg. Writes are upserts keyed on the
record id so that retried writes from the persistence writer are
idempotent. JSON columns are written with ``json.dumps`` and decoded on
read.
"""

import json
import logging
from typing import Any

from src.alerts.persistence import AlertStorage
from src.alerts.schemas import Alert, AlertRule, AlertThreshold
from src.storage.database import Database

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS alert_thresholds (
    threshold_id     TEXT PRIMARY KEY,
    name             TEXT NOT NULL,
    description      TEXT NOT NULL DEFAULT '',
    metric           TEXT NOT NULL,
    operator         TEXT NOT NULL,
    value            DOUBLE PRECISION NOT NULL,
    severity         TEXT NOT NULL,
    enabled          BOOLEAN NOT NULL DEFAULT TRUE,
    cooldown_minutes DOUBLE PRECISION NOT NULL DEFAULT 60,
    context          JSONB,
    metadata         JSONB NOT NULL DEFAULT '{}'::jsonb,
    created_at       TIMESTAMPTZ NOT NULL,
    updated_at       TIMESTAMPTZ NOT NULL
);

CREATE TABLE IF NOT EXISTS alert_rules (
    rule_id     TEXT PRIMARY KEY,
    name        TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    conditions  JSONB NOT NULL,
    actions     JSONB NOT NULL,
    enabled     BOOLEAN NOT NULL DEFAULT TRUE,
    priority    INTEGER NOT NULL DEFAULT 1,
    context     JSONB,
    metadata    JSONB NOT NULL DEFAULT '{}'::jsonb,
    created_at  TIMESTAMPTZ NOT NULL,
    updated_at  TIMESTAMPTZ NOT NULL
);

CREATE TABLE IF NOT EXISTS alerts (
    alert_id             TEXT PRIMARY KEY,
    threshold_id         TEXT NOT NULL,
    metric               TEXT NOT NULL,
    current_value        DOUBLE PRECISION NOT NULL,
    expected_value       DOUBLE PRECISION NOT NULL,
    deviation            DOUBLE PRECISION NOT NULL DEFAULT 0,
    deviation_percentage DOUBLE PRECISION NOT NULL DEFAULT 0,
    severity             TEXT NOT NULL,
    status               TEXT NOT NULL,
    title                TEXT NOT NULL,
    description          TEXT NOT NULL,
    context              JSONB,
    metadata             JSONB NOT NULL DEFAULT '{}'::jsonb,
    triggered_at         TIMESTAMPTZ NOT NULL,
    acknowledged_at      TIMESTAMPTZ,
    acknowledged_by      TEXT,
    resolved_at          TIMESTAMPTZ,
    resolved_by          TEXT,
    resolution_notes     TEXT,
    suppressed_at        TIMESTAMPTZ,
    suppressed_by        TEXT,
    trigger_count        INTEGER NOT NULL DEFAULT 1,
    last_triggered       TIMESTAMPTZ
);

CREATE INDEX IF NOT EXISTS idx_alerts_status ON alerts (status);
CREATE INDEX IF NOT EXISTS idx_alerts_threshold ON alerts (threshold_id);
CREATE INDEX IF NOT EXISTS idx_alerts_triggered_at ON alerts (triggered_at DESC);
"""

_THRESHOLD_COLUMNS = (
    "threshold_id", "name", "description", "metric", "operator", "value",
    "severity", "enabled", "cooldown_minutes", "context", "metadata",
    "created_at", "updated_at",
)

_RULE_COLUMNS = (
    "rule_id", "name", "description", "conditions", "actions", "enabled",
    "priority", "context", "metadata", "created_at", "updated_at",
)

_ALERT_COLUMNS = (
    "alert_id", "threshold_id", "metric", "current_value", "expected_value",
    "deviation", "deviation_percentage", "severity", "status", "title",
    "description", "context", "metadata", "triggered_at", "acknowledged_at",
    "acknowledged_by", "resolved_at", "resolved_by", "resolution_notes",
    "suppressed_at", "suppressed_by", "trigger_count", "last_triggered",
)

_JSON_COLUMNS = frozenset({"context", "metadata", "conditions", "actions"})


def _upsert_sql(table: str, columns: tuple[str, ...]) -> str:
    placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
    updates = ", ".join(f"{c} = EXCLUDED.{c}" for c in columns[1:])
    return (
        f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders}) "
        f"ON CONFLICT ({columns[0]}) DO UPDATE SET {updates}"
    )


def _params(record: Any, columns: tuple[str, ...]) -> list[Any]:
    """Column values in order; JSON columns serialised."""
    params = []
    for column in columns:
        if column == "context":
            context = record.context
            if context is not None and hasattr(context, "to_dict"):
                context = context.to_dict()
            params.append(json.dumps(context) if context is not None else None)
        elif column in ("conditions", "actions"):
            params.append(json.dumps([item.to_dict() for item in getattr(record, column)]))
        elif column in _JSON_COLUMNS:
            params.append(json.dumps(getattr(record, column)))
        else:
            params.append(getattr(record, column))
    return params


def _row_to_dict(row: Any) -> dict[str, Any]:
    """Convert an asyncpg Record to a dict with decoded JSON columns."""
    data = dict(row)
    for column in _JSON_COLUMNS & data.keys():
        if isinstance(data[column], str):
            data[column] = json.loads(data[column])
    return data


class AlertRepository(AlertStorage):
    """asyncpg-backed ``AlertStorage``."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_tables(self) -> None:
        """Create tables and indexes if they do not exist."""
        async with self._db.transaction() as conn:
            await conn.execute(SCHEMA_SQL)
        logger.info("Alert tables ready")

    async def save_threshold(self, threshold: AlertThreshold) -> None:
        await self._db.execute(
            _upsert_sql("alert_thresholds", _THRESHOLD_COLUMNS),
            *_params(threshold, _THRESHOLD_COLUMNS),
        )

    async def delete_threshold(self, threshold_id: str) -> None:
        await self._db.execute(
            "DELETE FROM alert_thresholds WHERE threshold_id = $1", threshold_id,
        )

    async def save_alert(self, alert: Alert) -> None:
        await self._db.execute(
            _upsert_sql("alerts", _ALERT_COLUMNS),
            *_params(alert, _ALERT_COLUMNS),
        )

    async def update_alert(self, alert: Alert) -> None:
        """Persist the alert's mutable fields.

        Falls back to an upsert so that an update overtaking a failed
        insert still lands.
        """
        await self.save_alert(alert)

    async def save_rule(self, rule: AlertRule) -> None:
        await self._db.execute(
            _upsert_sql("alert_rules", _RULE_COLUMNS),
            *_params(rule, _RULE_COLUMNS),
        )

    async def delete_rule(self, rule_id: str) -> None:
        await self._db.execute("DELETE FROM alert_rules WHERE rule_id = $1", rule_id)

    async def list_thresholds(self) -> list[AlertThreshold]:
        rows = await self._db.fetch(
            "SELECT * FROM alert_thresholds ORDER BY created_at",
        )
        return [AlertThreshold.from_dict(_row_to_dict(r)) for r in rows]

    async def list_rules(self) -> list[AlertRule]:
        rows = await self._db.fetch(
            "SELECT * FROM alert_rules ORDER BY priority, created_at",
        )
        return [AlertRule.from_dict(_row_to_dict(r)) for r in rows]

    async def list_alerts(self) -> list[Alert]:
        rows = await self._db.fetch("SELECT * FROM alerts ORDER BY triggered_at DESC")
        return [Alert.from_dict(_row_to_dict(r)) for r in rows]
