"""Database schema for SQLite persistence.

One schema covers every SQLite-backed component so that deleting an
execution cascades to its stage tasks, snapshots and events. Stage jobs
carry no foreign key: a job may legitimately outlive its execution and is
discarded by the orchestrator's guard.
"""

from __future__ import annotations

import sqlite3

SCHEMA = """
CREATE TABLE IF NOT EXISTS executions (
    id TEXT PRIMARY KEY,
    status TEXT NOT NULL,
    current_stage TEXT NOT NULL,
    input TEXT DEFAULT '{}',
    metadata TEXT DEFAULT '{}',
    external_ref TEXT,
    version INTEGER NOT NULL DEFAULT 0,
    claimed_by TEXT,
    claim_attempt INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    completed_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_executions_status ON executions(status);
CREATE INDEX IF NOT EXISTS idx_executions_external_ref ON executions(external_ref);
CREATE INDEX IF NOT EXISTS idx_executions_created ON executions(created_at);

CREATE TABLE IF NOT EXISTS stage_tasks (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    execution_id TEXT NOT NULL REFERENCES executions(id) ON DELETE CASCADE,
    stage_name TEXT NOT NULL,
    attempt_number INTEGER NOT NULL DEFAULT 1,
    status TEXT NOT NULL,
    input_snapshot_id TEXT,
    output_snapshot_id TEXT,
    error_message TEXT,
    duration_ms INTEGER,
    token_usage TEXT DEFAULT '{}',
    cost_usd REAL,
    started_at TEXT,
    completed_at TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_stage_tasks_execution ON stage_tasks(execution_id);

CREATE TABLE IF NOT EXISTS snapshots (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    execution_id TEXT NOT NULL REFERENCES executions(id) ON DELETE CASCADE,
    stage_name TEXT NOT NULL,
    snapshot_type TEXT NOT NULL,
    data TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_snapshots_execution ON snapshots(execution_id, seq);
CREATE INDEX IF NOT EXISTS idx_snapshots_stage ON snapshots(execution_id, stage_name, snapshot_type);

CREATE TABLE IF NOT EXISTS events (
    sequence INTEGER PRIMARY KEY AUTOINCREMENT,
    event_id TEXT NOT NULL UNIQUE,
    execution_id TEXT NOT NULL REFERENCES executions(id) ON DELETE CASCADE,
    stage_task_id TEXT,
    event_type TEXT NOT NULL,
    data TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_events_execution ON events(execution_id, sequence);
CREATE INDEX IF NOT EXISTS idx_events_type ON events(event_type);
CREATE INDEX IF NOT EXISTS idx_events_stage_task ON events(stage_task_id);
CREATE INDEX IF NOT EXISTS idx_events_created ON events(created_at);

CREATE TABLE IF NOT EXISTS stage_jobs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    job_id TEXT NOT NULL,
    stage TEXT NOT NULL,
    execution_id TEXT NOT NULL,
    state TEXT NOT NULL DEFAULT 'waiting',
    deliver_at TEXT NOT NULL,
    attempts INTEGER NOT NULL DEFAULT 0,
    max_attempts INTEGER NOT NULL,
    locked_until TEXT,
    version INTEGER NOT NULL DEFAULT 0,
    last_error TEXT,
    enqueued_at TEXT NOT NULL,
    finished_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_stage_jobs_ready ON stage_jobs(stage, state, deliver_at);
CREATE INDEX IF NOT EXISTS idx_stage_jobs_finished ON stage_jobs(stage, state, finished_at)
"""


def create_tables(conn: sqlite3.Connection) -> None:
    """Create database tables if they don't exist."""
    for statement in SCHEMA.split(";"):
        statement = statement.strip()
        if statement:
            conn.execute(statement)
    conn.commit()
