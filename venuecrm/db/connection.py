"""
Database Connection Management
PostgreSQL connections with the context manager pattern.
One get_db_cursor() block is one transaction: commit on success, rollback on error.
"""

import psycopg2
from psycopg2.extras import RealDictCursor
from contextlib import contextmanager
from pathlib import Path
import logging

from venuecrm.config import config

logger = logging.getLogger(__name__)

SCHEMA_FILE = Path(__file__).parent / "schema.sql"


@contextmanager
def get_db_connection():
    """
    Context manager for database connections.
    Automatically commits on success, rolls back on error, and closes connection.

    Usage:
        with get_db_connection() as conn:
            cur = conn.cursor()
            cur.execute("SELECT * FROM bookings")
            results = cur.fetchall()
    """
    conn = None
    try:
        conn = psycopg2.connect(config.DATABASE_URL, application_name="venuecrm")
        logger.debug("Database connection established")
        yield conn
        conn.commit()
        logger.debug("Transaction committed")
    except Exception as e:
        if conn:
            conn.rollback()
            logger.error(f"Transaction rolled back due to error: {e}")
        raise
    finally:
        if conn:
            conn.close()
            logger.debug("Database connection closed")


@contextmanager
def get_db_cursor(dict_cursor=True):
    """
    Context manager for a database cursor inside its own transaction.
    Returns RealDictCursor by default for row-as-dict results.

    Usage:
        with get_db_cursor() as cur:
            cur.execute("SELECT * FROM bookings WHERE id = %s", (42,))
            booking = cur.fetchone()  # dict-like row
    """
    with get_db_connection() as conn:
        cursor_factory = RealDictCursor if dict_cursor else None
        cur = conn.cursor(cursor_factory=cursor_factory)
        try:
            yield cur
        finally:
            cur.close()


def init_schema(schema_file: Path = SCHEMA_FILE):
    """Create tables, constraints and indexes. Statements are idempotent."""
    sql = schema_file.read_text(encoding="utf-8")
    with get_db_cursor(dict_cursor=False) as cur:
        cur.execute(sql)
    logger.info(f"Applied schema from {schema_file.name}")
