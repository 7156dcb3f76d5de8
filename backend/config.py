# backend/config.py
import os
from dotenv import load_dotenv

load_dotenv()

def _required(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ValueError(f"{name} is not set in .env file!")
    return value

def _int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        return default

DATABASE_URL = _required("DATABASE_URL")
JWT_SECRET = _required("JWT_SECRET")
CLIENT_URL = _required("CLIENT_URL")
GITHUB_CLIENT_ID = _required("GITHUB_CLIENT_ID")
GITHUB_CLIENT_SECRET = _required("GITHUB_CLIENT_SECRET")

JWT_ALGORITHM = "HS256"
SESSION_MAX_AGE_DAYS = _int("SESSION_MAX_AGE_DAYS", 30)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
