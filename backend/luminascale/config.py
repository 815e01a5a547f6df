"""Application configuration. Loads from environment and .env file."""
import logging
import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent
# Load .env from cwd, then backend/.env, then project root .env
load_dotenv()
load_dotenv(BASE_DIR / ".env")
load_dotenv(BASE_DIR.parent / ".env")

# Remote enhancement endpoint
ENHANCE_API_URL = os.getenv("ENHANCE_API_URL", "http://localhost:3001").rstrip("/")
ENHANCE_TIMEOUT_SECONDS = float(os.getenv("ENHANCE_TIMEOUT_SECONDS", "180"))
ENHANCE_MAX_ATTEMPTS = int(os.getenv("ENHANCE_MAX_ATTEMPTS", "5"))
ENHANCE_INITIAL_RETRY_DELAY = float(os.getenv("ENHANCE_INITIAL_RETRY_DELAY", "3.0"))
ENHANCE_BACKOFF_FACTOR = 1.5
HEALTH_TIMEOUT_SECONDS = float(os.getenv("HEALTH_TIMEOUT_SECONDS", "5"))

# Intake limits
MAX_UPLOAD_SIZE_MB = int(os.getenv("MAX_UPLOAD_SIZE_MB", "15"))
MAX_UPLOAD_SIZE_BYTES = MAX_UPLOAD_SIZE_MB * 1024 * 1024
ACCEPTED_MIME_TYPES = {"image/jpeg", "image/png", "image/webp"}
# Browsers and some uploaders still send the non-standard alias
MIME_ALIASES = {"image/jpg": "image/jpeg"}
# The remote endpoint rejects JSON bodies above this size
MAX_REQUEST_BODY_MB = int(os.getenv("MAX_REQUEST_BODY_MB", "25"))
MAX_REQUEST_BODY_BYTES = MAX_REQUEST_BODY_MB * 1024 * 1024

# Pre-upload pixel ceiling, applied regardless of device class
UPLOAD_PIXEL_CEILING = int(os.getenv("UPLOAD_PIXEL_CEILING", str(4_000_000)))

# Device classes (name -> (max safe pixel count, target long edge, jpeg quality 0-1))
DEVICE_PROFILES = {
    "mobile": (4_000_000, 2048, 0.85),
    "desktop": (25_000_000, 4096, 0.95),
}
MOBILE_USER_AGENT_PATTERN = r"Android|webOS|iPhone|iPad|iPod|BlackBerry|IEMobile|Opera Mini"
MOBILE_VIEWPORT_MAX_WIDTH = 768

# Editor
SLOW_PASS_SETTLE_SECONDS = float(os.getenv("SLOW_PASS_SETTLE_SECONDS", "0.3"))
EXPORT_FILENAME_PREFIX = "luminascale-enhanced"

# Overall progress bar: the network phase occupies [start, start + span * 100]
NETWORK_PROGRESS_START = 25.0
NETWORK_PROGRESS_SPAN = 0.7

# Server (for uvicorn)
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))
# CORS: comma-separated origins, e.g. "http://localhost:5173,http://127.0.0.1:5173"
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",") if o.strip()]

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("luminascale")
