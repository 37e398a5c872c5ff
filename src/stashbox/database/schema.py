"""DDL for the secret store.

``secrets`` holds one row per ciphertext in the stash root, keyed by its
file name (case-sensitive). ``secret`` is the 44-byte key || nonce blob.
"""

SCHEMA_VERSION = 1

SECRETS_TABLE = """
CREATE TABLE IF NOT EXISTS secrets (
    file_id    TEXT PRIMARY KEY,
    secret     BLOB NOT NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
)
"""

VERSION_TABLE = """
CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER PRIMARY KEY,
    applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
)
"""

TABLES = ("secrets", "schema_version")


def get_init_schema():
    """Statements that create the store and record :data:`SCHEMA_VERSION`."""
    return [
        SECRETS_TABLE,
        VERSION_TABLE,
        f"INSERT OR IGNORE INTO schema_version (version) VALUES ({SCHEMA_VERSION})",
    ]


def get_drop_schema():
    return [f"DROP TABLE IF EXISTS {table}" for table in TABLES]
