# config.py
# Configuration and environment variable loading

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from .env file (for local development)
load_dotenv()

# Clinical assistant (OpenAI)
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
ASSISTANT_MODEL = os.getenv("MILA_ASSISTANT_MODEL", "gpt-4o")
ASSISTANT_TEMPERATURE = float(os.getenv("MILA_ASSISTANT_TEMPERATURE", "0.3"))
ASSISTANT_MAX_RETRIES = int(os.getenv("MILA_ASSISTANT_MAX_RETRIES", "3"))

# Storage
DB_PATH = Path(os.getenv("MILA_DB_PATH", str(Path(__file__).parent / "mila.db")))

# Logging
LOG_LEVEL = os.getenv("MILA_LOG_LEVEL", "INFO")

# PDF export
HOSPITAL_NAME = os.getenv("HOSPITAL_NAME", "Neonatal Intensive Care Unit")
PDF_HEADER_COLOR = "#003366"


def validate_config():
    """Check if required configuration is present"""
    if not OPENAI_API_KEY or OPENAI_API_KEY == "your-openai-api-key-here":
        return False, "OPENAI_API_KEY not configured in .env file"
    return True, "Configuration valid"


def configure_logging(level=None):
    """Set up the "mila" logger hierarchy; safe to call more than once"""
    logger = logging.getLogger("mila")
    logger.setLevel((level or LOG_LEVEL).upper())
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        logger.addHandler(handler)
    return logger
