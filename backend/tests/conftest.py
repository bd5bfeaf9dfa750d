"""Shared test setup: point the service at a throwaway SQLite database."""

import os
import tempfile

# Use a temporary database for testing
test_db = tempfile.NamedTemporaryFile(suffix='.db', delete=False)
os.environ["DATABASE_URL"] = f"sqlite:///{test_db.name}"
os.environ["REDIS_URL"] = ""
