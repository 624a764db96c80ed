"""
config.py

Configuration settings for the NFL Playoff Pool application.

This file defines:
  - The database connection URL.
  - The season and ESPN endpoints used for seeds and live scores.
  - Live sync scheduling and the admin allowlist.
  - Logging configuration for the application.
"""

import os
import logging
import sys

# ------------------------------------------------------------------------
# Database Configuration
# ------------------------------------------------------------------------
# SQLite is used by default; can be overridden by setting the DATABASE_URL environment variable.
DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///nfl_playoff_pool.db")

# ------------------------------------------------------------------------
# Season / ESPN Configuration
# ------------------------------------------------------------------------
SEASON = int(os.environ.get("SEASON", "2025"))

ESPN_SCOREBOARD_URL = os.environ.get(
    "ESPN_SCOREBOARD_URL",
    "https://site.api.espn.com/apis/site/v2/sports/football/nfl/scoreboard"
)
ESPN_STANDINGS_URL = os.environ.get(
    "ESPN_STANDINGS_URL",
    "https://site.web.api.espn.com/apis/v2/sports/football/nfl/standings"
)

# Seconds before an ESPN request is abandoned.
REQUEST_TIMEOUT = float(os.environ.get("REQUEST_TIMEOUT", "10"))

# ------------------------------------------------------------------------
# Live Sync Configuration
# ------------------------------------------------------------------------
SYNC_INTERVAL_SECONDS = float(os.environ.get("SYNC_INTERVAL_SECONDS", "30"))

# Comma separated list of emails that hold the admin role.
ADMIN_EMAILS = [e.strip().lower() for e in os.environ.get("ADMIN_EMAILS", "").split(",") if e.strip()]

# ------------------------------------------------------------------------
# Logging Configuration
# ------------------------------------------------------------------------
# Configure logging to output messages to stdout.
logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger("NFL-Playoff-Pool")
