import sqlite3
from pathlib import Path

from config import settings


CONTACT_TABLE_SQL = '''
    CREATE TABLE IF NOT EXISTS Contact (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        phoneNumber TEXT,
        email TEXT,
        linkedId INTEGER,
        linkPrecedence TEXT NOT NULL CHECK(linkPrecedence IN ('secondary', 'primary')),
        createdAt DATETIME NOT NULL,
        updatedAt DATETIME NOT NULL,
        deletedAt DATETIME,
        FOREIGN KEY (linkedId) REFERENCES Contact (id)
    )
'''

CONTACT_INDEXES_SQL = (
    "CREATE INDEX IF NOT EXISTS ix_contact_email ON Contact (email)",
    "CREATE INDEX IF NOT EXISTS ix_contact_phone ON Contact (phoneNumber)",
    "CREATE INDEX IF NOT EXISTS ix_contact_linked ON Contact (linkedId)",
)


def init_db(db_path: str = None):
    db_path = Path(db_path or settings.DB_PATH)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path))
    try:
        create_tables(conn)
    finally:
        conn.close()


def create_tables(conn: sqlite3.Connection):
    cursor = conn.cursor()
    cursor.execute(CONTACT_TABLE_SQL)
    for statement in CONTACT_INDEXES_SQL:
        cursor.execute(statement)
    conn.commit()


def get_db_connection(db_path: str = None) -> sqlite3.Connection:
    # FastAPI may resolve the dependency and run the handler on different threads
    conn = sqlite3.connect(str(db_path or settings.DB_PATH), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn
