from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from app.core.config import settings


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _get_db_path() -> Path:
    return Path(settings.analytics_db_path)


def init_db() -> None:
    if not settings.analytics_enabled:
        return
    db_path = _get_db_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS ai_runs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                created_at TEXT NOT NULL,
                run_id TEXT NOT NULL,
                kind TEXT NOT NULL,
                task_type TEXT,
                model TEXT,
                fallbacks_attempted INTEGER NOT NULL DEFAULT 0,
                model_count INTEGER NOT NULL DEFAULT 0,
                failure_count INTEGER NOT NULL DEFAULT 0,
                status TEXT NOT NULL,
                error_code TEXT,
                latency_ms INTEGER
            )
            """
        )
        conn.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_ai_runs_created_at
            ON ai_runs (created_at)
            """
        )
        conn.commit()
    purge_old_records()


def log_ai_run(
    *,
    run_id: str,
    kind: str,
    status: str,
    task_type: str | None = None,
    model: str | None = None,
    fallbacks_attempted: int = 0,
    model_count: int = 0,
    failure_count: int = 0,
    error_code: str | None = None,
    latency_ms: int | None = None,
) -> None:
    if not settings.analytics_enabled:
        return
    db_path = _get_db_path()
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            """
            INSERT INTO ai_runs (
                created_at, run_id, kind, task_type, model, fallbacks_attempted,
                model_count, failure_count, status, error_code, latency_ms
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                _utc_now(),
                run_id,
                kind,
                task_type,
                model,
                fallbacks_attempted,
                model_count,
                failure_count,
                status,
                error_code,
                latency_ms,
            ),
        )
        conn.commit()


def purge_old_records() -> dict[str, int]:
    if not settings.analytics_enabled:
        return {"ai_runs": 0}

    db_path = _get_db_path()
    retention = max(1, int(settings.analytics_retention_days))
    with sqlite3.connect(db_path) as conn:
        cur = conn.execute(
            "DELETE FROM ai_runs WHERE created_at < ?",
            (_cutoff(retention),),
        )
        deleted = int(cur.rowcount or 0)
        conn.commit()
    return {"ai_runs": deleted}


def _cutoff(days: int) -> str:
    return (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()


def _row_to_dict(cursor: sqlite3.Cursor, row: tuple) -> dict[str, Any]:
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


def get_ai_run_summary() -> dict[str, Any]:
    if not settings.analytics_enabled:
        return {"enabled": False}
    db_path = _get_db_path()
    with sqlite3.connect(db_path) as conn:
        total = conn.execute("SELECT COUNT(*) FROM ai_runs").fetchone()[0]
        total_7d = conn.execute(
            "SELECT COUNT(*) FROM ai_runs WHERE created_at >= ?",
            (_cutoff(7),),
        ).fetchone()[0]
        fallback_runs = conn.execute(
            "SELECT COUNT(*) FROM ai_runs WHERE fallbacks_attempted > 0"
        ).fetchone()[0]
        cur = conn.execute(
            """
            SELECT kind, status, COUNT(*) AS count, AVG(latency_ms) AS avg_latency_ms
            FROM ai_runs
            GROUP BY kind, status
            ORDER BY kind, status
            """
        )
        breakdown = [_row_to_dict(cur, row) for row in cur.fetchall()]
    return {
        "enabled": True,
        "total": total,
        "total_7d": total_7d,
        "fallback_runs": fallback_runs,
        "breakdown": breakdown,
    }


def get_latest_ai_runs(limit: int = 20) -> list[dict[str, Any]]:
    if not settings.analytics_enabled:
        return []
    db_path = _get_db_path()
    with sqlite3.connect(db_path) as conn:
        cur = conn.execute(
            """
            SELECT created_at, run_id, kind, task_type, model, fallbacks_attempted,
                   model_count, failure_count, status, error_code, latency_ms
            FROM ai_runs
            ORDER BY id DESC
            LIMIT ?
            """,
            (limit,),
        )
        rows = cur.fetchall()
        return [_row_to_dict(cur, row) for row in rows]
