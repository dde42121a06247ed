"""
Pytest configuration for test database setup.
"""
import os
import sqlite3
import tempfile
from pathlib import Path

import pytest

# Point the database somewhere harmless BEFORE main.py is imported, since it
# initializes the database at import time.
os.environ.setdefault("HEXGAME_DB_PATH", str(Path(tempfile.gettempdir()) / "hexgame_test.db"))


@pytest.fixture(autouse=True)
def reset_test_db(tmp_path, monkeypatch):
    """Give every test a fresh database file."""
    monkeypatch.setenv("HEXGAME_DB_PATH", str(tmp_path / "hexgame_test.db"))

    from api.database import _connection_cache, _connection_lock, init_db

    # Drop cached connections so nothing points at an old file
    with _connection_lock:
        for conn in list(_connection_cache.values()):
            try:
                conn.close()
            except sqlite3.ProgrammingError:
                pass  # opened by another thread
        _connection_cache.clear()

    init_db()

    yield
