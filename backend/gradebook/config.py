"""Runtime configuration read from the environment."""

import os

# Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./gradebook.db")
SQL_DEBUG = os.getenv("SQL_DEBUG", "false").lower() == "true"

# Timing
DEFAULT_DURATION_MINUTES = int(os.getenv("DEFAULT_DURATION_MINUTES", "60"))
GRACE_PERIOD_SECONDS = int(os.getenv("GRACE_PERIOD_SECONDS", "30"))
NEAR_EXPIRATION_RATIO = float(os.getenv("NEAR_EXPIRATION_RATIO", "0.1"))

# Grades are reported on this scale (French-style /20 by default)
GRADE_SCALE = float(os.getenv("GRADE_SCALE", "20"))

# Cache
CACHE_BACKEND = os.getenv("CACHE_BACKEND", "memory").lower()
CACHE_TTL_SECONDS = int(os.getenv("CACHE_TTL_SECONDS", "3600"))
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

# File answers
UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")
MAX_UPLOAD_SIZE = int(os.getenv("MAX_UPLOAD_SIZE", str(10 * 1024 * 1024)))

# Web
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
