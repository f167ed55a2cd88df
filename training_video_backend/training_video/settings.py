import os
from dotenv import load_dotenv
import logging

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Load .env file if it exists (for local development)
env_path = os.path.join(os.path.dirname(__file__), "..", ".env")
if os.path.exists(env_path):
    load_dotenv(env_path)
    logger.info("Loaded .env file for local development")
else:
    logger.info("No .env file found, using environment variables")

OPENAI_TTS_MODEL = os.getenv("OPENAI_TTS_MODEL", "tts-1")
OPENAI_TTS_VOICE = os.getenv("OPENAI_TTS_VOICE", "alloy")

DID_API_URL = os.getenv("DID_API_URL", "https://api.d-id.com").rstrip("/")

# Polling budget for a talk: 60 attempts * 10s = 10 minutes
DID_POLL_INTERVAL_MS = int(os.getenv("DID_POLL_INTERVAL_MS", "10000"))
DID_POLL_MAX_ATTEMPTS = int(os.getenv("DID_POLL_MAX_ATTEMPTS", "60"))

# Presenter images. Empty values fall back to the public catalog defaults (see avatars.py).
DID_PRESENTER_URL = os.getenv("DID_PRESENTER_URL", "").strip()
_fallbacks_env = os.getenv("DID_FALLBACK_PRESENTER_URLS", "").strip()
DID_FALLBACK_PRESENTER_URLS = [u.strip() for u in _fallbacks_env.split(",") if u.strip()]

RETRY_MAX_RETRIES = int(os.getenv("RETRY_MAX_RETRIES", "3"))
RETRY_DELAY_MS = int(os.getenv("RETRY_DELAY_MS", "1000"))
RETRY_EXPONENTIAL_BACKOFF = os.getenv("RETRY_EXPONENTIAL_BACKOFF", "true").strip().lower() not in ("0", "false", "no")

# Comma-separated list of allowed origins for CORS (e.g., "https://app.vercel.app,https://www.example.com").
_allowed_origins_env = os.getenv("ALLOWED_ORIGINS", "").strip()
if _allowed_origins_env:
    ALLOWED_ORIGINS = [o.strip() for o in _allowed_origins_env.split(",") if o.strip()]
else:
    ALLOWED_ORIGINS = ["*"]

def missing_keys() -> list:
    missing = []
    if not os.getenv("OPENAI_API_KEY", ""): missing.append("OPENAI_API_KEY")
    if not os.getenv("DID_API_KEY", ""): missing.append("DID_API_KEY")
    return missing

def has_all_keys() -> bool:
    missing = missing_keys()
    if missing:
        logger.warning(f"Missing API keys: {', '.join(missing)}")
    return not missing
