#!/usr/bin/env python3
"""Experiment data CSV export script

Writes two CSV files from the study database:
  experiments_<ts>.csv  one row per experiment (persona, order, comparison,
                        demographics flattened into prefixed columns)
  responses_<ts>.csv    one row per survey response (long format)

Usage examples:
  python export_experiments_csv.py                          # all experiments
  python export_experiments_csv.py --since "2026-10-01"     # created on or after
  python export_experiments_csv.py --experiment-id <UUID>   # a single experiment
  python export_experiments_csv.py --latest                 # most recent one
  python export_experiments_csv.py --completed-only
"""

from __future__ import annotations

import argparse
import csv
import json
import os
import sqlite3
from datetime import datetime, time
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple


DEFAULT_DB_PATH = os.path.join('data', 'experiments.db')
DEFAULT_EXPORT_DIR = os.path.join('data', 'exports')

EXPERIMENT_BASE_FIELDS = [
    'experiment_id',
    'order_type',
    'sequence',
    'current_step',
    'started_at',
    'completed_at',
    'created_at',
    'updated_at',
]

RESPONSE_BASE_FIELDS = [
    'experiment_id',
    'order_type',
    'step_index',
    'condition',
    'created_at',
]


def extract_json_columns(raw_value: Any, prefix: str,
                         skip: Sequence[str] = ()) -> Dict[str, Any]:
    """Parse a JSON object column and map its top-level entries to prefixed columns.

    Nested dict/list values are serialized back to JSON (UTF-8, no ASCII escape).
    When parsing fails, the column `<prefix>raw` keeps the original string.
    """
    columns: Dict[str, Any] = {}
    text = '' if raw_value is None else str(raw_value).strip()
    if not text:
        return columns

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        columns[f"{prefix}raw"] = text
        return columns

    if not isinstance(parsed, dict):
        columns[prefix.rstrip('_')] = json.dumps(parsed, ensure_ascii=False)
        return columns

    for key, value in parsed.items():
        if key in skip:
            continue
        if isinstance(value, (dict, list)):
            columns[f"{prefix}{key}"] = json.dumps(value, ensure_ascii=False)
        else:
            columns[f"{prefix}{key}"] = value
    return columns


def connect_db(db_path: str) -> sqlite3.Connection:
    if not os.path.exists(db_path):
        raise SystemExit(f"Database file not found: {db_path}")
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return conn


def fetch_experiments(conn: sqlite3.Connection, cutoff: Optional[datetime],
                      experiment_id: Optional[str], latest: bool,
                      completed_only: bool) -> List[sqlite3.Row]:
    query = (
        "SELECT id, persona, product, experiment_order, order_type, current_step, "
        "final_comparison, demographics, tracking_data, "
        "started_at, completed_at, created_at, updated_at "
        "FROM experiments "
    )
    clauses: List[str] = []
    params: List[Any] = []
    if experiment_id:
        clauses.append("id = ?")
        params.append(experiment_id)
    if cutoff is not None:
        clauses.append("created_at >= ?")
        params.append(cutoff.isoformat(timespec='seconds'))
    if completed_only:
        clauses.append("completed_at IS NOT NULL")
    if clauses:
        query += "WHERE " + " AND ".join(clauses) + " "
    if latest:
        query += "ORDER BY created_at DESC LIMIT 1"
    else:
        query += "ORDER BY created_at"
    return conn.execute(query, params).fetchall()


def fetch_responses(conn: sqlite3.Connection, experiment_ids: Sequence[str]) -> List[sqlite3.Row]:
    if not experiment_ids:
        return []
    placeholders = ','.join('?' for _ in experiment_ids)
    query = (
        "SELECT r.experiment_id, e.order_type, r.step_index, r.condition, r.payload, r.created_at "
        "FROM survey_responses r JOIN experiments e ON e.id = r.experiment_id "
        "WHERE r.experiment_id IN (" + placeholders + ") "
        "ORDER BY r.experiment_id, r.step_index"
    )
    return conn.execute(query, tuple(experiment_ids)).fetchall()


def _tracking_summary(raw_value: Any) -> Dict[str, Any]:
    """Counts per telemetry list plus total dwell time per condition."""
    try:
        tracking = json.loads(raw_value) if raw_value else {}
    except json.JSONDecodeError:
        return {}
    summary: Dict[str, Any] = {}
    for name in ('dwellTimes', 'scrollPatterns', 'firstInteractions', 'buttonClicks'):
        summary[f'tracking_{name}_count'] = len(tracking.get(name) or [])
    for entry in tracking.get('dwellTimes') or []:
        key = f"dwell_ms_{entry.get('condition')}"
        summary[key] = summary.get(key, 0) + (entry.get('duration') or 0)
    return summary


def build_experiment_rows(rows: Iterable[sqlite3.Row]) -> Tuple[List[str], List[Dict[str, Any]]]:
    processed: List[Dict[str, Any]] = []
    fieldnames = set(EXPERIMENT_BASE_FIELDS)

    for row in rows:
        order = json.loads(row['experiment_order'])
        record: Dict[str, Any] = {
            'experiment_id': row['id'],
            'order_type': row['order_type'],
            'sequence': '>'.join(order.get('sequence', [])),
            'current_step': row['current_step'],
            'started_at': row['started_at'],
            'completed_at': row['completed_at'],
            'created_at': row['created_at'],
            'updated_at': row['updated_at'],
        }
        record.update(extract_json_columns(row['persona'], 'persona_'))
        record.update(extract_json_columns(row['product'], 'product_', skip=('imageUrl',)))
        record.update(extract_json_columns(row['final_comparison'], 'comparison_'))
        # The phone number stays in the database only
        record.update(extract_json_columns(row['demographics'], 'demographics_', skip=('phone',)))
        record.update(_tracking_summary(row['tracking_data']))

        fieldnames.update(record.keys())
        processed.append(record)

    ordered_fields = list(EXPERIMENT_BASE_FIELDS)
    ordered_fields.extend(sorted(fieldnames - set(ordered_fields)))
    return ordered_fields, processed


def build_response_rows(rows: Iterable[sqlite3.Row]) -> Tuple[List[str], List[Dict[str, Any]]]:
    processed: List[Dict[str, Any]] = []
    fieldnames = set(RESPONSE_BASE_FIELDS)

    for row in rows:
        record: Dict[str, Any] = {
            'experiment_id': row['experiment_id'],
            'order_type': row['order_type'],
            'step_index': row['step_index'],
            'condition': row['condition'],
            'created_at': row['created_at'],
        }
        record.update(extract_json_columns(
            row['payload'], '', skip=('condition', 'stepIndex', 'timestamp')))

        fieldnames.update(record.keys())
        processed.append(record)

    ordered_fields = list(RESPONSE_BASE_FIELDS)
    ordered_fields.extend(sorted(fieldnames - set(ordered_fields)))
    return ordered_fields, processed


def normalize_row(fieldnames: Sequence[str], record: Dict[str, Any]) -> Dict[str, Any]:
    normalized: Dict[str, Any] = {}
    for field in fieldnames:
        value = record.get(field, '')
        if value is None:
            normalized[field] = ''
        elif isinstance(value, (int, float, str)):
            normalized[field] = value
        else:
            normalized[field] = json.dumps(value, ensure_ascii=False)
    return normalized


def write_csv(path: str, fieldnames: Sequence[str], rows: List[Dict[str, Any]]) -> None:
    os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
    with open(path, 'w', newline='', encoding='utf-8-sig') as csvfile:
        writer = csv.DictWriter(csvfile, fieldnames=fieldnames, quoting=csv.QUOTE_ALL)
        writer.writeheader()
        for record in rows:
            writer.writerow(normalize_row(fieldnames, record))


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='Export experiment data to CSV')
    parser.add_argument('--db', default=DEFAULT_DB_PATH, help='SQLite DB file path')
    parser.add_argument('--outdir', default=DEFAULT_EXPORT_DIR, help='CSV output directory')
    parser.add_argument('--since', help='Lower bound on creation time (YYYY-MM-DD or YYYY-MM-DD HH:MM[:SS])')
    parser.add_argument('--experiment-id', help='Export a single experiment (UUID)')
    parser.add_argument('--latest', action='store_true', help='Export only the most recent experiment')
    parser.add_argument('--completed-only', action='store_true', help='Skip experiments without completedAt')
    return parser.parse_args(argv)


def resolve_cutoff(since: Optional[str]) -> Optional[datetime]:
    if not since:
        return None
    for fmt in ('%Y-%m-%d %H:%M:%S', '%Y-%m-%d %H:%M', '%Y-%m-%d'):
        try:
            parsed = datetime.strptime(since, fmt)
        except ValueError:
            continue
        if fmt == '%Y-%m-%d':
            return datetime.combine(parsed.date(), time(0, 0))
        return parsed
    raise SystemExit('--since must be YYYY-MM-DD or YYYY-MM-DD HH:MM[:SS]')


def export(db_path: str, outdir: str, cutoff: Optional[datetime] = None,
           experiment_id: Optional[str] = None, latest: bool = False,
           completed_only: bool = False) -> List[str]:
    """Write the CSV files and return their paths (empty when nothing matched)."""
    conn = connect_db(db_path)
    try:
        experiments = fetch_experiments(conn, cutoff, experiment_id, latest, completed_only)
        if not experiments:
            return []

        experiment_fields, experiment_records = build_experiment_rows(experiments)
        response_rows = fetch_responses(conn, [row['id'] for row in experiments])
        response_fields, response_records = build_response_rows(response_rows)

        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        outputs = [
            (os.path.join(outdir, f'experiments_{timestamp}.csv'), experiment_fields, experiment_records),
            (os.path.join(outdir, f'responses_{timestamp}.csv'), response_fields, response_records),
        ]
        for path, fields, records in outputs:
            write_csv(path, fields, records)
            print(f"Exported {len(records)} rows: {path}")
        return [path for path, _, _ in outputs]
    finally:
        conn.close()


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    paths = export(args.db, args.outdir, resolve_cutoff(args.since),
                   args.experiment_id, args.latest, args.completed_only)
    if not paths:
        print('No matching experiments')


if __name__ == '__main__':
    main()
