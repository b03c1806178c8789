"""Pytest configuration and shared fixtures."""

import pytest
import sys
import os

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import database


TESTDATA_DIR = os.path.join(os.path.dirname(__file__), "testdata")


@pytest.fixture
def net_dev_path():
    """Path to a captured /proc/net/dev with lo, eth0 and eth1."""
    return os.path.join(TESTDATA_DIR, "net_dev.data")


@pytest.fixture
def db_path(tmp_path):
    """Provide a path to a temporary SQLite database file."""
    return str(tmp_path / "test.db")


@pytest.fixture
def db_path_initialized(db_path):
    """Provide a path to a temporary SQLite database file with schema initialized."""
    database.init_db(db_path).close()
    return db_path


@pytest.fixture
def db_conn(db_path):
    """Provide a SQLite database connection initialized with schema.

    Creates a file-based database at db_path so that multiple connections
    (e.g., the persister's own connection) can access the same database.
    """
    conn = database.init_db(db_path)
    yield conn
    conn.close()
