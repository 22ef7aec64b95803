import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./booking_engine.db")

# Redis is optional: without it locks and rate limits stay in-process and
# availability responses are not cached
REDIS_URL = os.getenv("REDIS_URL")

# Concurrency discipline for the booking critical section: "lock" or "store"
# "store" needs PostgreSQL (SERIALIZABLE + FOR UPDATE + exclusion constraint)
BOOKING_CONCURRENCY_STRATEGY = os.getenv("BOOKING_CONCURRENCY_STRATEGY", "lock").lower()
# Lock TTL must exceed worst-case transaction latency but stay short enough
# that a crashed holder cannot block a practitioner for long
BOOKING_LOCK_TTL_SECONDS = float(os.getenv("BOOKING_LOCK_TTL_SECONDS", "5"))
BOOKING_LOCK_WAIT_SECONDS = float(os.getenv("BOOKING_LOCK_WAIT_SECONDS", "10"))
BOOKING_SERIALIZATION_RETRIES = int(os.getenv("BOOKING_SERIALIZATION_RETRIES", "3"))

# Scheduling defaults
DEFAULT_SLOT_GRANULARITY_MINUTES = int(os.getenv("DEFAULT_SLOT_GRANULARITY_MINUTES", "30"))
DEFAULT_BUFFER_MINUTES = int(os.getenv("DEFAULT_BUFFER_MINUTES", "0"))
MAX_AVAILABILITY_RANGE_DAYS = int(os.getenv("MAX_AVAILABILITY_RANGE_DAYS", "31"))
AVAILABILITY_CACHE_TTL_SECONDS = int(os.getenv("AVAILABILITY_CACHE_TTL_SECONDS", "30"))

# Rate limiting for the public booking endpoint
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
BOOKING_RATE_LIMIT = int(os.getenv("BOOKING_RATE_LIMIT", "20"))
BOOKING_RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("BOOKING_RATE_LIMIT_WINDOW_SECONDS", "60"))

# CORS
ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "http://localhost:5173,http://localhost:3000",
).split(",")
