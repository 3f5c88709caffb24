"""Configuration settings for the Flare file store."""
import os

# Server
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3000"))

# Directory paths
UPLOAD_DIR = os.getenv("UPLOAD_DIR", "./uploads")
TEMP_DIR = os.getenv("TEMP_DIR", "./temp")  # must be on the same filesystem as UPLOAD_DIR
STATIC_DIR = os.getenv("STATIC_DIR", "./public")

# Retention
RETENTION_SECONDS = int(os.getenv("RETENTION_SECONDS", str(24 * 60 * 60)))  # 24h
SWEEP_INTERVAL_SECONDS = int(os.getenv("SWEEP_INTERVAL_SECONDS", str(60 * 60)))  # 1h
SWEEP_FAILURE_THRESHOLD = int(os.getenv("SWEEP_FAILURE_THRESHOLD", "3"))
SWEEP_FAILURE_WINDOW_SECONDS = int(
    os.getenv("SWEEP_FAILURE_WINDOW_SECONDS", str(3 * SWEEP_INTERVAL_SECONDS))
)

# Upload limits. None means unbounded.
MAX_UPLOAD_SIZE = int(os.environ["MAX_UPLOAD_SIZE"]) if os.getenv("MAX_UPLOAD_SIZE") else None
CHUNK_SIZE = 8192  # 8KB

# Logging
LOG_DIR = os.getenv("LOG_DIR", "./logs")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOGZIO_TOKEN = os.getenv("LOGZIO_TOKEN")
LOGZIO_URL = os.getenv("LOGZIO_URL", "https://listener-eu.logz.io:8071")
APP_ENV = os.getenv("APP_ENV", "development")
