"""
Configuration module for the StyleMe try-on core
Contains logger setup, environment variables and provider constants
"""

import os
import logging
from typing import Optional

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


# -------------------------
# Logger Setup
# -------------------------
def setup_logger(
    name: str = __name__,
    log_file: Optional[str] = None,
    level: str = "INFO",
) -> logging.Logger:
    """
    Set up and return a logger with a console handler and an optional file handler

    Args:
        name: Logger name (usually __name__)
        log_file: Path to log file, or None to log to the console only
        level: Console log level name

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)

    # Avoid adding duplicate handlers
    if logger.handlers:
        return logger

    # Create formatter
    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(getattr(logging, level.upper(), logging.INFO))
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # File handler
    if log_file:
        file_handler = logging.FileHandler(log_file, mode="a")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


# -------------------------
# Environment Variables
# -------------------------
LOG_FILE = os.getenv("LOG_FILE")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Create the main application logger
logger = setup_logger("styleme", log_file=LOG_FILE, level=LOG_LEVEL)

# fashn.ai
FASHN_API_KEY = os.getenv("FASHN_API_KEY")
FASHN_BASE_URL = os.getenv("FASHN_BASE_URL", "https://api.fashn.ai/v1")
FASHN_MODEL_NAME = os.getenv("FASHN_MODEL_NAME", "tryon-max")

# revenuecat
REVENUECAT_API_KEY = os.getenv("REVENUECAT_API_KEY")
REVENUECAT_APP_USER_ID = os.getenv("REVENUECAT_APP_USER_ID")
REVENUECAT_ENTITLEMENT_ID = os.getenv("REVENUECAT_ENTITLEMENT_ID", "Premium access")

# supabase
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_KEY")


# -------------------------
# Provider Constants
# -------------------------
API_CONFIG = {
    "TIMEOUT_SECONDS": 30.0,
    "RETRY_ATTEMPTS": 3,
    "RETRY_BASE_DELAY_SECONDS": 1.0,
    "POLLING_INTERVAL_MS": 2000,
    "MAX_POLLING_ATTEMPTS": 30,
    "STATUS_TIMEOUT_SECONDS": 10.0,
    "POLLING_CEILING_SECONDS": 120.0,
}


def validate_api_config() -> dict:
    """Report whether the try-on provider credentials look usable."""
    return {
        "has_api_key": bool(FASHN_API_KEY),
        "is_configured": bool(FASHN_API_KEY) and FASHN_API_KEY.startswith("fa-"),
        "base_url": FASHN_BASE_URL,
        "model_name": FASHN_MODEL_NAME,
    }


def get_api_key_info(api_key: Optional[str] = None) -> str:
    """Return a masked version of the provider key that is safe to log."""
    key = FASHN_API_KEY if api_key is None else api_key
    if not key:
        return "No API key configured"
    if len(key) <= 10:
        return "*" * len(key)
    return f"{key[:6]}...{key[-4:]}"


# Log configuration status
logger.info("Configuration loaded successfully")
logger.debug(f"FASHN_API_KEY configured: {get_api_key_info()}")
logger.debug(f"REVENUECAT_API_KEY configured: {bool(REVENUECAT_API_KEY)}")
logger.debug(f"SUPABASE_URL configured: {bool(SUPABASE_URL)}")
logger.debug(f"SUPABASE_SERVICE_KEY configured: {bool(SUPABASE_SERVICE_KEY)}")
