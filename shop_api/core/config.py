# shop_api/core/config.py
import os
import re
import sys
import logging
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger

project_root = Path(__file__).resolve().parent.parent.parent
dotenv_path = project_root / ".env"

# --- Load .env only if it exists; the process environment still wins ---
if dotenv_path.is_file():
    logger.debug(f"Loading environment variables from: {dotenv_path}")
    load_dotenv(dotenv_path=dotenv_path, override=False)
else:
    logger.debug(f".env file not found at {dotenv_path}. Relying on system environment variables.")


# stdlib level names that Loguru defines as well
_LOGURU_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


class InterceptHandler(logging.Handler):
    """
    Re-emits stdlib records (uvicorn, starlette, pymongo) through Loguru.

    The stdlib logger name is kept as ``extra[source]`` so driver and server
    lines can be told apart from application lines in the sinks.
    """

    def emit(self, record: logging.LogRecord) -> None:
        level = record.levelname if record.levelname in _LOGURU_LEVELS else record.levelno
        depth = 2
        frame = logging.currentframe()
        # skip logging internals so Loguru reports the original call site
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame, depth = frame.f_back, depth + 1
        logger.bind(source=record.name).opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def setup_logging():
    """Configure Loguru sinks and route stdlib logging (uvicorn, pymongo, ...) through it."""
    log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()

    log_format = (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        "<magenta>{extra[request_id]}</magenta> | "
        "<blue>{extra[source]}</blue> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
    )
    log_file_path_str = os.getenv("LOG_FILE_PATH", "logs/shop_api_{time:YYYY-MM-DD}.log")
    log_rotation = os.getenv("LOG_ROTATION", "1 day")
    log_retention = os.getenv("LOG_RETENTION", "7 days")
    log_serialize = _env_bool("LOG_SERIALIZE", "false")

    logger.remove()
    logger.configure(extra={"request_id": "-", "source": "app"})

    logger.add(sys.stderr, level=log_level_name, format=log_format, colorize=True)

    # An empty LOG_FILE_PATH disables the file sink
    if log_file_path_str:
        log_file_path = Path(log_file_path_str)
        try:
            log_file_path.parent.mkdir(parents=True, exist_ok=True)
            logger.add(
                log_file_path,
                level=log_level_name,
                format=log_format,
                rotation=log_rotation,
                retention=log_retention,
                serialize=log_serialize,
                enqueue=True,
                backtrace=True,
                diagnose=False,
                encoding="utf-8",
            )
            logger.info(f"File logging enabled at: {log_file_path}")
        except OSError as e:
            logger.error(f"Failed to setup file logging at {log_file_path}: {e}")

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in list(logging.root.manager.loggerDict):
        if name.startswith(("uvicorn", "fastapi", "starlette", "pymongo")):
            existing_logger = logging.getLogger(name)
            existing_logger.handlers = [InterceptHandler()]
            existing_logger.propagate = False
    # pymongo is chatty at DEBUG (heartbeats, pool events)
    logging.getLogger("pymongo").setLevel(logging.WARNING)

    logger.info(f"Loguru logging setup complete. Level: {log_level_name}")


def mask_mongo_uri(uri: str) -> str:
    """Hide credentials in a MongoDB connection string before logging it."""
    if not uri:
        return "Not set"
    return re.sub(r"//([^:/@]+):([^@]+)@", "//****:****@", uri)


# --- Application ---
APP_ENV: str = os.getenv("APP_ENV", "development").strip().lower()
APP_VERSION: str = "1.1"
APP_UPDATED_AT: str = "2026-01-18"

try:
    PORT: int = int(os.getenv("PORT", "3000"))
except ValueError:
    logger.warning("Invalid PORT. Using default: 3000.")
    PORT = 3000

# --- Database Configuration ---
MONGO_URI: str = os.getenv("MONGO_URI", "mongodb://localhost:27017/shop")
DB_NAME: str = os.getenv("DB_NAME", "shop")
COUNTERS_COLLECTION: str = os.getenv("COUNTERS_COLLECTION", "counters")

try:
    MONGO_TIMEOUT_MS: int = int(os.getenv("MONGO_TIMEOUT_MS", "10000"))
except ValueError:
    logger.warning("Invalid MONGO_TIMEOUT_MS. Using default: 10000.")
    MONGO_TIMEOUT_MS = 10000

# --- API key for mutating endpoints ---
API_KEY: str = os.getenv("API_KEY", "")
if not API_KEY:
    logger.critical("FATAL: API_KEY environment variable is not set.")
    raise ValueError("API_KEY environment variable is not set.")

# --- Rate limiting ---
RATE_LIMIT_ENABLED: bool = _env_bool("RATE_LIMIT_ENABLED", "true")
RATE_LIMIT_WRITE: str = os.getenv("RATE_LIMIT_WRITE", "60/minute")

logger.debug(f"Environment: {APP_ENV}")
logger.debug(f"Database Name: {DB_NAME}")
logger.debug(f"MongoDB URI: {mask_mongo_uri(MONGO_URI)}")
