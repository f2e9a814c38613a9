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

# Target formats offered to clients (subset of the registry's output formats)
ALLOWED_FORMATS = [
    f.strip() for f in os.getenv("ALLOWED_FORMATS", "jpg,png,webp,avif,bmp").split(",") if f.strip()
]

# Encoder defaults when the client sends no usable value
DEFAULT_QUALITY = int(os.getenv("DEFAULT_QUALITY", "80"))
DEFAULT_JPEG_COMPRESSION = 2

# Limits (env)
# Batch: hard cap on files per request, max size per file (MB)
MAX_FILES = int(os.getenv("MAX_FILES", "3"))
MAX_FILE_SIZE_MB = int(os.getenv("MAX_FILE_SIZE_MB", "12"))
MAX_FILE_SIZE_BYTES = MAX_FILE_SIZE_MB * 1024 * 1024
# Largest requested output width or height (px)
MAX_DIMENSION = int(os.getenv("MAX_DIMENSION", "4096"))

# Progress frames buffered per subscriber before new frames are dropped
PROGRESS_QUEUE_SIZE = int(os.getenv("PROGRESS_QUEUE_SIZE", "64"))
# Seconds a progress client may wait for a batch that never starts
PROGRESS_IDLE_TIMEOUT = float(os.getenv("PROGRESS_IDLE_TIMEOUT", "300"))

# Server (for uvicorn)
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8080"))
# CORS: comma-separated origins, e.g. "http://localhost:3000,http://127.0.0.1:3000"
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("converter")
