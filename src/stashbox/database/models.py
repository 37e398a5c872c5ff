"""ORM-style helpers for the secret store."""

from .connection import DatabaseConnection
from ..core.exceptions import DuplicateSecretError


class BaseModel:
    """Base class for DB models."""

    __slots__ = ("db",)

    def __init__(self, db: DatabaseConnection):
        """Initialize with a DatabaseConnection."""
        self.db = db


class SecretModel(BaseModel):
    """DB model for per-file secrets; every mutation is one committed transaction."""

    def create(self, file_id, secret):
        """Insert a serialized secret; raise DuplicateSecretError if one is live."""
        with self.db.get_transaction_context() as cursor:
            cursor.execute("SELECT 1 FROM secrets WHERE file_id = ?", (file_id,))
            if cursor.fetchone() is not None:
                raise DuplicateSecretError(f"A secret for '{file_id}' already exists.")
            cursor.execute(
                "INSERT INTO secrets (file_id, secret) VALUES (?, ?)",
                (file_id, bytes(secret)),
            )

    def get(self, file_id):
        """Get the serialized secret for a file id, or None."""
        row = self.db.fetch_one(
            "SELECT secret FROM secrets WHERE file_id = ?", (file_id,)
        )
        return bytes(row["secret"]) if row else None

    def exists(self, file_id):
        """Check whether a file id has a live secret."""
        row = self.db.fetch_one("SELECT 1 AS found FROM secrets WHERE file_id = ?", (file_id,))
        return row is not None

    def delete(self, file_id):
        """Delete a secret; return True if a row was removed."""
        with self.db.get_transaction_context() as cursor:
            cursor.execute("DELETE FROM secrets WHERE file_id = ?", (file_id,))
            return cursor.rowcount > 0

    def delete_many(self, file_ids):
        """Delete several secrets in one transaction; return the count removed."""
        file_ids = list(file_ids)
        if not file_ids:
            return 0
        removed = 0
        with self.db.get_transaction_context() as cursor:
            for file_id in file_ids:
                cursor.execute("DELETE FROM secrets WHERE file_id = ?", (file_id,))
                removed += cursor.rowcount
        return removed

    def list_ids(self):
        """List every file id with a live secret."""
        rows = self.db.fetch_all("SELECT file_id FROM secrets ORDER BY file_id")
        return [row["file_id"] for row in rows]

    def count(self):
        """Count live secrets."""
        row = self.db.fetch_one("SELECT COUNT(*) AS total FROM secrets")
        return row["total"] if row else 0
