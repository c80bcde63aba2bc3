"""Runtime configuration, read once from the environment."""

import os

# SQLAlchemy URL of the database used by src/db/database.py
DATABASE_URL = os.environ.get("SNL_DATABASE_URL", "sqlite:///snakes_ladders.sqlite3")

# Echo all SQL statements (handy while debugging the repository layer)
DATABASE_ECHO = os.environ.get("SNL_DATABASE_ECHO", "0").lower() in ("1", "true", "yes")

# A roll that is still in flight after this many seconds is considered stuck.
ROLL_TIMEOUT_SECONDS = float(os.environ.get("SNL_ROLL_TIMEOUT_SECONDS", "30"))

LOG_LEVEL = os.environ.get("SNL_LOG_LEVEL", "INFO").upper()
