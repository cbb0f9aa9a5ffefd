import sqlite3
import secrets
from typing import Any, Dict, List, Optional


def _db(db_path: str):
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: str) -> None:
    conn = sqlite3.connect(db_path)
    try:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS tx_log (
                tx_id TEXT PRIMARY KEY,
                action TEXT NOT NULL,
                agreement_address TEXT,
                status TEXT NOT NULL,
                tx_hash TEXT,
                error TEXT,
                created_at INTEGER DEFAULT (strftime('%s', 'now')),
                completed_at INTEGER
            );
            """
        )
        conn.commit()
    finally:
        conn.close()


def log_transaction(db_path: str, action: str, agreement_address: Optional[str] = None) -> str:
    tx_id = secrets.token_hex(8)
    with _db(db_path) as conn:
        conn.execute(
            "INSERT INTO tx_log (tx_id, action, agreement_address, status) VALUES (?, ?, ?, 'pending')",
            (tx_id, action, agreement_address),
        )
        conn.commit()
    return tx_id


def update_transaction_success(db_path: str, tx_id: str, tx_hash: str,
                               agreement_address: Optional[str] = None) -> None:
    with _db(db_path) as conn:
        conn.execute(
            """
            UPDATE tx_log
            SET status = 'succeeded', tx_hash = ?,
                agreement_address = COALESCE(?, agreement_address),
                completed_at = strftime('%s', 'now')
            WHERE tx_id = ?
            """,
            (tx_hash, agreement_address, tx_id),
        )
        conn.commit()


def update_transaction_failed(db_path: str, tx_id: str, error: str) -> None:
    with _db(db_path) as conn:
        conn.execute(
            "UPDATE tx_log SET status = 'failed', error = ?, completed_at = strftime('%s', 'now') WHERE tx_id = ?",
            (error, tx_id),
        )
        conn.commit()


def recent_transactions(db_path: str, limit: int = 50) -> List[Dict[str, Any]]:
    with _db(db_path) as conn:
        rows = conn.execute(
            "SELECT * FROM tx_log ORDER BY created_at DESC, rowid DESC LIMIT ?",
            (limit,),
        ).fetchall()
    return [dict(row) for row in rows]
