"""
Test configuration: repo root on sys.path, an isolated NOTEDB_HOME, and
seeded embedded databases.

Every test runs with NOTEDB_HOME pointing at a temporary directory so nothing
can read or write a real ~/.notedb.
"""

import sys
from pathlib import Path

import pytest

# Add repo root to sys.path so tests can import notedb, api, cli
REPO_ROOT = Path(__file__).parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from notedb.backends import EmbeddedBackend  # noqa: E402
from notedb.config import Settings  # noqa: E402

# =============================================================================
# SCHEMA FIXTURE
# =============================================================================

SCHEMA = [
    """CREATE TABLE tasks (
        id INTEGER PRIMARY KEY,
        title TEXT,
        status TEXT,
        priority TEXT,
        dueDate TEXT
    )""",
    # counter/switch table with the natural-key index only
    "CREATE TABLE habits (habitId TEXT, date TEXT, value INTEGER, UNIQUE(habitId, date))",
    # counter table with both optional columns
    """CREATE TABLE tracked (
        uuid TEXT,
        habitId TEXT,
        date TEXT,
        value INTEGER,
        updatedAt TEXT,
        UNIQUE(habitId, date)
    )""",
    "CREATE TABLE journal (date TEXT UNIQUE, entry TEXT)",
    "CREATE TABLE Time (activity TEXT, duration TEXT, date TEXT)",
    "CREATE TABLE sales (day TEXT, region TEXT, amount REAL, units INTEGER)",
    # no UNIQUE index: upserts must fail with ConstraintError
    "CREATE TABLE loose (habitId TEXT, date TEXT, value INTEGER)",
]

ROWS = {
    "tasks": [
        (1, "Write report", "active", "high", "2024-01-15"),
        (2, "Fix bug", "active", "low", "2024-01-31T23:59:59"),
        (3, "Plan trip", "done", "high", "2024-02-01"),
        (4, "Read book", "active", "high", "2023-12-31"),
    ],
    "Time": [
        ("work", "01:30:00", "2024-06-13"),
        ("work", "00:30:00", "2024-06-13"),
        ("gym", "00:45:15", "2024-06-14"),
    ],
    "sales": [
        ("2024-01-01", "north", 10.0, 1),
        ("2024-01-01", "south", 5.0, 2),
        ("2024-01-02", "north", 7.0, 3),
    ],
}


def seed(backend) -> None:
    """Create the test schema and fixture rows through the backend contract."""
    for statement in SCHEMA:
        backend.run(statement)
    for table, rows in ROWS.items():
        placeholders = ", ".join("?" for _ in rows[0])
        for row in rows:
            backend.run(f'INSERT INTO "{table}" VALUES ({placeholders})', list(row))


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Point NOTEDB_HOME at a temp dir and clear NOTEDB_* overrides."""
    home = tmp_path / "notedb-home"
    monkeypatch.setenv("NOTEDB_HOME", str(home))
    for var in (
        "NOTEDB_DB_FILE",
        "NOTEDB_MODE",
        "NOTEDB_API_BASE_URL",
        "NOTEDB_API_TOKEN",
        "NOTEDB_STRICT_DATES",
        "NOTEDB_DEFAULT_PERIOD",
        "NOTEDB_LOG_LEVEL",
        "NOTEDB_REQUEST_TIMEOUT",
    ):
        monkeypatch.delenv(var, raising=False)
    return home


@pytest.fixture
def db_file(tmp_path):
    """Path for a not-yet-created embedded database file."""
    return tmp_path / "data" / "test.sqlite"


@pytest.fixture
def backend(db_file):
    """Seeded EmbeddedBackend."""
    backend = EmbeddedBackend(db_file)
    seed(backend)
    yield backend
    backend.close()


@pytest.fixture
def settings(db_file):
    """Local-mode settings over a seeded database file."""
    seeder = EmbeddedBackend(db_file)
    seed(seeder)
    seeder.close()
    return Settings(mode="local", db_file_path=str(db_file))
