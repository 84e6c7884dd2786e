"""
Experiment Repository for the gift explanation study.
Implements Repository pattern for experiment records and survey responses.

Every public method opens its own connection. Multi-statement writes run in
one transaction and step changes are compare-and-set on `current_step`, so a
failed call leaves the record exactly as it was.
"""

import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

from zoneinfo import ZoneInfo

from ..errors import NotFoundError, StepTransitionError, StorageUnavailableError
from ..services.models import ResponseRecord


logger = logging.getLogger(__name__)

JSON_FIELDS = ('persona', 'product', 'explanations', 'experiment_order',
               'final_comparison', 'demographics', 'tracking_data')

COLUMNS = ['id', 'persona', 'product', 'explanations', 'experiment_order', 'order_type',
           'current_step', 'final_comparison', 'demographics', 'tracking_data',
           'started_at', 'completed_at', 'created_at', 'updated_at']


class ExperimentRepository:
    """Experiment data repository with SQLite backend"""

    def __init__(self, db_path: str = os.path.join('data', 'experiments.db'),
                 timezone: str = 'Asia/Seoul'):
        self.db_path = db_path
        self.tz = ZoneInfo(timezone)
        db_dir = os.path.dirname(db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)
        self._init_db()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection inside a transaction; map driver errors to StorageUnavailableError."""
        try:
            conn = sqlite3.connect(self.db_path, timeout=10)
        except sqlite3.Error as e:
            logger.error("Cannot open database %s: %s", self.db_path, e)
            raise StorageUnavailableError("Storage is temporarily unavailable") from e
        try:
            with conn:
                yield conn
        except sqlite3.IntegrityError:
            raise
        except sqlite3.DatabaseError as e:
            # Locked, unreadable or corrupt database file
            logger.error("Database operation failed: %s", e)
            raise StorageUnavailableError("Storage is temporarily unavailable") from e
        finally:
            conn.close()

    def _init_db(self):
        """Initialize the database with required tables (non-destructive)."""
        with self._connect() as conn:
            conn.execute('''
                CREATE TABLE IF NOT EXISTS experiments (
                    id TEXT PRIMARY KEY,
                    persona TEXT NOT NULL,
                    product TEXT,
                    explanations TEXT,
                    experiment_order TEXT NOT NULL,
                    order_type TEXT NOT NULL,
                    current_step INTEGER NOT NULL DEFAULT 0,
                    final_comparison TEXT,
                    demographics TEXT,
                    tracking_data TEXT,
                    started_at TEXT NOT NULL,
                    completed_at TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            ''')

            # One response per sequence position per experiment
            conn.execute('''
                CREATE TABLE IF NOT EXISTS survey_responses (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    experiment_id TEXT NOT NULL,
                    step_index INTEGER NOT NULL,
                    condition TEXT NOT NULL,
                    payload TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    UNIQUE (experiment_id, step_index),
                    FOREIGN KEY (experiment_id) REFERENCES experiments (id)
                )
            ''')

    def now_str(self) -> str:
        """Current time as an ISO-8601 string in the configured time zone."""
        return datetime.now(self.tz).isoformat(timespec='seconds')

    def create_experiment(self, experiment_id: str, persona: Dict[str, Any],
                          product: Dict[str, Any], explanations: Dict[str, Any],
                          experiment_order: Dict[str, Any],
                          tracking_data: Dict[str, Any], started_at: str) -> None:
        """
        Insert a new experiment at step 0.

        Args:
            experiment_id: Unique experiment identifier
            persona: Recipient persona fields
            product: Recommended product
            explanations: Explanation text per condition
            experiment_order: Serialized order assignment
            tracking_data: Initial telemetry container
            started_at: Start timestamp
        """
        now_ts = self.now_str()
        with self._connect() as conn:
            conn.execute('''
                INSERT INTO experiments
                (id, persona, product, explanations, experiment_order, order_type,
                 current_step, tracking_data, started_at, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, 0, ?, ?, ?, ?)
            ''', (
                experiment_id,
                json.dumps(persona, ensure_ascii=False),
                json.dumps(product, ensure_ascii=False),
                json.dumps(explanations, ensure_ascii=False),
                json.dumps(experiment_order),
                experiment_order['orderType'],
                json.dumps(tracking_data, ensure_ascii=False),
                started_at,
                now_ts,
                now_ts,
            ))

    def get_experiment(self, experiment_id: str) -> Optional[Dict[str, Any]]:
        """
        Retrieve an experiment with its survey responses

        Returns:
            Dict: Experiment data or None if not found
        """
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {', '.join(COLUMNS)} FROM experiments WHERE id = ?",
                (experiment_id,)).fetchone()
            if row is None:
                return None
            experiment = self._row_to_dict(row)
            experiment['survey_responses'] = self._fetch_responses(conn, experiment_id)
        return experiment

    def get_all_experiments(self) -> List[Dict[str, Any]]:
        """Retrieve all experiments, newest first, for analysis and the admin view."""
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT {', '.join(COLUMNS)} FROM experiments ORDER BY created_at DESC, id"
            ).fetchall()
            experiments = []
            for row in rows:
                experiment = self._row_to_dict(row)
                experiment['survey_responses'] = self._fetch_responses(conn, experiment['id'])
                experiments.append(experiment)
        return experiments

    def advance_step(self, experiment_id: str, from_step: int, to_step: int) -> None:
        """Move `current_step` from `from_step` to `to_step` if it still equals `from_step`."""
        with self._connect() as conn:
            self._advance(conn, experiment_id, from_step, to_step)

    def add_survey_response(self, experiment_id: str, response: ResponseRecord,
                            from_step: int, to_step: int) -> None:
        """Append a survey response and advance the step in one transaction."""
        with self._connect() as conn:
            try:
                conn.execute('''
                    INSERT INTO survey_responses
                    (experiment_id, step_index, condition, payload, created_at)
                    VALUES (?, ?, ?, ?, ?)
                ''', (
                    experiment_id,
                    response.step_index,
                    response.condition.value,
                    json.dumps(response.to_dict(), ensure_ascii=False),
                    response.timestamp,
                ))
            except sqlite3.IntegrityError as e:
                raise StepTransitionError(
                    f"step {response.step_index} already has a response") from e
            self._advance(conn, experiment_id, from_step, to_step)

    def save_final_comparison(self, experiment_id: str, comparison: Dict[str, Any],
                              from_step: int, to_step: int) -> None:
        """Store the comparison (last write wins); advance only when from_step != to_step."""
        with self._connect() as conn:
            self._set_json(conn, experiment_id, 'final_comparison', comparison)
            if from_step != to_step:
                self._advance(conn, experiment_id, from_step, to_step)

    def save_demographics(self, experiment_id: str, demographics: Dict[str, Any],
                          from_step: int, to_step: int) -> None:
        """Store demographics (last write wins) and close the experiment.

        `completed_at` is only written while still empty.
        """
        with self._connect() as conn:
            self._set_json(conn, experiment_id, 'demographics', demographics)
            conn.execute('''
                UPDATE experiments SET completed_at = ?
                WHERE id = ? AND completed_at IS NULL
            ''', (self.now_str(), experiment_id))
            if from_step != to_step:
                self._advance(conn, experiment_id, from_step, to_step)

    def update_tracking_data(self, experiment_id: str, tracking_data: Dict[str, Any]) -> None:
        with self._connect() as conn:
            self._set_json(conn, experiment_id, 'tracking_data', tracking_data)

    def update_persona(self, experiment_id: str, persona: Dict[str, Any]) -> None:
        with self._connect() as conn:
            self._set_json(conn, experiment_id, 'persona', persona)

    def _set_json(self, conn: sqlite3.Connection, experiment_id: str,
                  column: str, value: Dict[str, Any]) -> None:
        if column not in JSON_FIELDS:
            raise ValueError(f"not a JSON column: {column}")
        cur = conn.execute(
            f"UPDATE experiments SET {column} = ?, updated_at = ? WHERE id = ?",
            (json.dumps(value, ensure_ascii=False), self.now_str(), experiment_id))
        if cur.rowcount == 0:
            raise NotFoundError(f"Experiment not found: {experiment_id}")

    def _advance(self, conn: sqlite3.Connection, experiment_id: str,
                 from_step: int, to_step: int) -> None:
        cur = conn.execute('''
            UPDATE experiments SET current_step = ?, updated_at = ?
            WHERE id = ? AND current_step = ?
        ''', (to_step, self.now_str(), experiment_id, from_step))
        if cur.rowcount == 0:
            exists = conn.execute('SELECT 1 FROM experiments WHERE id = ?',
                                  (experiment_id,)).fetchone()
            if exists is None:
                raise NotFoundError(f"Experiment not found: {experiment_id}")
            # Raising inside the transaction rolls back any earlier statement
            raise StepTransitionError(
                f"experiment is no longer at step {from_step}; reload to continue")

    def _fetch_responses(self, conn: sqlite3.Connection, experiment_id: str) -> List[Dict[str, Any]]:
        rows = conn.execute('''
            SELECT payload FROM survey_responses
            WHERE experiment_id = ?
            ORDER BY step_index, id
        ''', (experiment_id,)).fetchall()
        return [json.loads(r[0]) for r in rows]

    def _row_to_dict(self, row) -> Dict[str, Any]:
        experiment = dict(zip(COLUMNS, row))
        for field in JSON_FIELDS:
            raw = experiment[field]
            if raw:
                try:
                    experiment[field] = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning("Unreadable %s on experiment %s", field, experiment['id'])
                    experiment[field] = None
            else:
                experiment[field] = None
        return experiment
