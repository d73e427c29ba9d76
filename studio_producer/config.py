"""Centralized configuration for the studio_producer pipeline."""
import os
from dotenv import load_dotenv

load_dotenv()

# --- Model Configuration ---
MODEL_NAME = os.environ.get("MODEL_NAME", "gpt-4o-mini")
LLM_BASE_URL = os.environ.get("LLM_BASE_URL", "https://api.openai.com/v1")
LLM_API_KEY = os.environ.get("LLM_API_KEY", "NA")
LLM_MAX_RETRIES = int(os.environ.get("LLM_MAX_RETRIES", "3"))

SUPERVISOR_TEMPERATURE = 0.1
IMPORT_TEMPERATURE = 0.1
CONTENT_TEMPERATURE = 0.3
MEDIA_TEMPERATURE = 0.2
EXPORT_TEMPERATURE = 0.2

# --- Service URLs ---
STUDIO_SERVICES_URL = os.environ.get("STUDIO_SERVICES_URL", "http://localhost:8090")
STUDIO_CLOUD_BUCKET = os.environ.get("STUDIO_CLOUD_BUCKET", "")

# --- Timeouts (seconds) ---
LLM_TIMEOUT = float(os.environ.get("LLM_TIMEOUT", "300"))
SERVICES_TIMEOUT = float(os.environ.get("SERVICES_TIMEOUT", "600"))

# --- Retry / Recovery ---
STUDIO_RETRY_INITIAL_DELAY = float(os.environ.get("STUDIO_RETRY_INITIAL_DELAY", "1.0"))

# --- Iteration budgets ---
SUPERVISOR_MAX_ITERATIONS = 20
IMPORT_MAX_ITERATIONS = 10
CONTENT_MAX_ITERATIONS = 15
MEDIA_MAX_ITERATIONS = 20
EXPORT_MAX_ITERATIONS = 20

# --- Quality loop ---
QUALITY_APPROVAL_SCORE = 80
MAX_QUALITY_ITERATIONS = 2

# --- Persistence / Logging ---
STUDIO_SESSION_DIR = os.environ.get("STUDIO_SESSION_DIR", "")
STUDIO_LOG_DIR = os.environ.get("STUDIO_LOG_DIR", "")

# --- Web UI ---
STUDIO_WEB_USER = os.environ.get("STUDIO_WEB_USER", "admin")
STUDIO_WEB_PASSWORD = os.environ.get("STUDIO_WEB_PASSWORD", "")
STUDIO_WEB_PORT = int(os.environ.get("STUDIO_WEB_PORT", "8000"))
