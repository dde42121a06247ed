"""
Database module for SQLite storage of games and map templates.
Each game is one row holding its latest serialized state; WAL mode lets the
event streams read while actions write.
"""
import os
import sqlite3
import json
import threading
from contextlib import contextmanager
from typing import Optional, List, Dict, Any, Iterable

from .config import db_path
from .monitoring import track_database_operation

# Process-local storage for database connections, keyed by process/thread ID and file
_connection_cache = {}
_connection_lock = threading.Lock()

# game_id -> [lock, number of threads holding or waiting for it]; held around
# load -> apply -> save and dropped once nobody needs it
_game_locks: Dict[str, list] = {}
_game_locks_guard = threading.Lock()


def get_db_connection():
    """Get a database connection (process-local for better concurrency)."""
    path = db_path()
    cache_key = (os.getpid(), threading.get_ident(), str(path))

    with _connection_lock:
        if cache_key not in _connection_cache:
            conn = sqlite3.connect(str(path), timeout=30.0)  # 30 second timeout for concurrent access
            conn.row_factory = sqlite3.Row
            # Enable WAL mode for better concurrent reads/writes
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            conn.execute("PRAGMA temp_store=MEMORY")
            _connection_cache[cache_key] = conn
        return _connection_cache[cache_key]


def init_db():
    """Initialize the database with tables."""
    conn = get_db_connection()
    cursor = conn.cursor()

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS games (
            id TEXT PRIMARY KEY,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            phase TEXT NOT NULL,
            state_json TEXT NOT NULL
        )
    """)

    # Lobby listing filters on phase and sorts on updated_at
    cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_games_phase_updated ON games(phase, updated_at)
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS map_templates (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            hexes_json TEXT NOT NULL,
            ports_json TEXT NOT NULL
        )
    """)

    conn.commit()


@contextmanager
def game_lock(game_id: str):
    """Exclusive access to one game for a read-modify-write."""
    with _game_locks_guard:
        entry = _game_locks.setdefault(game_id, [threading.Lock(), 0])
        entry[1] += 1
    try:
        with entry[0]:
            yield
    finally:
        with _game_locks_guard:
            entry[1] -= 1
            if entry[1] == 0:
                del _game_locks[game_id]


@track_database_operation("insert", "games")
def create_game(game_id: str, state_json: Dict[str, Any]) -> None:
    """Create a new game record from its serialized state."""
    conn = get_db_connection()
    conn.execute("""
        INSERT INTO games (id, created_at, updated_at, phase, state_json)
        VALUES (?, ?, ?, ?, ?)
    """, (
        game_id,
        state_json["created_at"],
        state_json["updated_at"],
        state_json["phase"],
        json.dumps(state_json),
    ))
    conn.commit()


@track_database_operation("select", "games")
def get_game(game_id: str) -> Optional[sqlite3.Row]:
    """Get a game record by ID."""
    conn = get_db_connection()
    cursor = conn.execute("SELECT * FROM games WHERE id = ?", (game_id,))
    return cursor.fetchone()


def get_latest_state(game_id: str) -> Optional[Dict[str, Any]]:
    """Get the latest serialized game state, or None for an unknown game."""
    row = get_game(game_id)
    if row is None:
        return None
    return json.loads(row["state_json"])


@track_database_operation("update", "games")
def save_game_state(game_id: str, state_json: Dict[str, Any]) -> None:
    """Save the current game state as the latest snapshot."""
    conn = get_db_connection()
    conn.execute("""
        UPDATE games
        SET state_json = ?, phase = ?, updated_at = ?
        WHERE id = ?
    """, (json.dumps(state_json), state_json["phase"], state_json["updated_at"], game_id))
    conn.commit()


@track_database_operation("select", "games")
def list_games(phases: Iterable[str], limit: int = 20) -> List[Dict[str, Any]]:
    """Latest states of games in the given phases, most recently updated first."""
    phases = list(phases)
    if not phases:
        return []
    placeholders = ", ".join("?" for _ in phases)
    conn = get_db_connection()
    cursor = conn.execute(f"""
        SELECT state_json
        FROM games
        WHERE phase IN ({placeholders})
        ORDER BY updated_at DESC
        LIMIT ?
    """, (*phases, limit))
    return [json.loads(row["state_json"]) for row in cursor.fetchall()]


@track_database_operation("insert", "map_templates")
def create_template(template_json: Dict[str, Any]) -> None:
    conn = get_db_connection()
    conn.execute("""
        INSERT INTO map_templates (id, name, created_at, updated_at, hexes_json, ports_json)
        VALUES (?, ?, ?, ?, ?, ?)
    """, (
        template_json["id"],
        template_json["name"],
        template_json["created_at"],
        template_json["updated_at"],
        json.dumps(template_json["hexes"]),
        json.dumps(template_json["ports"]),
    ))
    conn.commit()


def _template_from_row(row: sqlite3.Row) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "name": row["name"],
        "hexes": json.loads(row["hexes_json"]),
        "ports": json.loads(row["ports_json"]),
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


@track_database_operation("select", "map_templates")
def get_template(template_id: str) -> Optional[Dict[str, Any]]:
    conn = get_db_connection()
    cursor = conn.execute("SELECT * FROM map_templates WHERE id = ?", (template_id,))
    row = cursor.fetchone()
    return _template_from_row(row) if row else None


@track_database_operation("select", "map_templates")
def list_templates(limit: int = 100) -> List[Dict[str, Any]]:
    conn = get_db_connection()
    cursor = conn.execute("""
        SELECT * FROM map_templates
        ORDER BY updated_at DESC
        LIMIT ?
    """, (limit,))
    return [_template_from_row(row) for row in cursor.fetchall()]


@track_database_operation("update", "map_templates")
def update_template(template_id: str, name: str, hexes: List[Dict[str, Any]],
                    ports: List[Dict[str, Any]], updated_at: str) -> bool:
    """Replace a template's name and layout; returns False for an unknown id."""
    conn = get_db_connection()
    cursor = conn.execute("""
        UPDATE map_templates
        SET name = ?, hexes_json = ?, ports_json = ?, updated_at = ?
        WHERE id = ?
    """, (name, json.dumps(hexes), json.dumps(ports), updated_at, template_id))
    conn.commit()
    return cursor.rowcount > 0


@track_database_operation("delete", "map_templates")
def delete_template(template_id: str) -> bool:
    """
    Delete a template. Games created from it keep their own copy of the layout.
    """
    conn = get_db_connection()
    cursor = conn.execute("DELETE FROM map_templates WHERE id = ?", (template_id,))
    conn.commit()
    return cursor.rowcount > 0
