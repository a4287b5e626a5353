import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./medsched.db")

# Reclamation: a TEMPORARILY_LOCKED slot whose appointment started more than
# LOCK_GRACE_HOURS ago is released by the sweep
LOCK_GRACE_HOURS = float(os.getenv("LOCK_GRACE_HOURS", "2"))
RECLAIM_INTERVAL_MINUTES = int(os.getenv("RECLAIM_INTERVAL_MINUTES", "15"))

# Creation-time checks accept start times this far in the past (clock skew between clients)
CLOCK_SKEW_TOLERANCE_MINUTES = int(os.getenv("CLOCK_SKEW_TOLERANCE_MINUTES", "5"))

# Coordinator-supplied windows ("book with fresh slot")
MIN_VISIT_MINUTES = int(os.getenv("MIN_VISIT_MINUTES", "15"))
MAX_VISIT_MINUTES = int(os.getenv("MAX_VISIT_MINUTES", "120"))

# Slots derived from a provider's recurring availability
DERIVED_SLOT_MINUTES = int(os.getenv("DERIVED_SLOT_MINUTES", "60"))

# Frontend origins allowed by CORS
ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "http://localhost:5173,http://localhost:3000",
).split(",")
