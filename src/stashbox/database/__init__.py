"""Secret store backed by SQLite."""
