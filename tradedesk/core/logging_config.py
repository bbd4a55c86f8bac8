# tradedesk/core/logging_config.py

import logging
from logging.handlers import RotatingFileHandler
import os
import sys

from tradedesk.core.config import get_settings

# Constants
MAX_LOG_SIZE_MB = 10
BACKUP_COUNT = 5

LOG_DIR = get_settings().LOG_DIR
os.makedirs(LOG_DIR, exist_ok=True)

# Create a reusable logger setup function
def setup_file_logger(name: str, filename: str, level=logging.INFO) -> logging.Logger:
    """
    Creates a rotating file logger with specified filename and level.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False
    # Module reloads (tests, uvicorn --reload) must not stack handlers
    if not any(isinstance(h, RotatingFileHandler) for h in logger.handlers):
        log_path = os.path.join(LOG_DIR, filename)
        handler = RotatingFileHandler(log_path, maxBytes=MAX_LOG_SIZE_MB * 1024 * 1024, backupCount=BACKUP_COUNT)
        formatter = logging.Formatter('%(asctime)s - %(levelname)s - %(name)s - %(message)s')
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger

def setup_stream_logger(name: str, level=logging.ERROR) -> logging.Logger:
    """
    Creates a logger that outputs to the console (stdout).
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False
    if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger

# --- Loggers by Component ---

database_logger   = setup_file_logger("database", "database.log", logging.INFO)
security_logger   = setup_file_logger("tradedesk.core.security", "security.log", logging.DEBUG)
app_logger        = setup_file_logger("tradedesk", "app.log", logging.INFO)
settlement_logger = setup_file_logger("settlement", "settlement.log", logging.DEBUG)
ledger_logger     = setup_file_logger("ledger", "ledger.log", logging.DEBUG)
money_requests_logger = setup_file_logger("money_requests", "money_requests.log", logging.DEBUG)
price_oracle_logger = setup_file_logger("price_oracle", "price_oracle.log", logging.DEBUG)
error_logger = setup_file_logger("error", "error.log", logging.ERROR)

# Realtime delivery logs to the console as well
realtime_logger  = setup_stream_logger("realtime", logging.ERROR)

logging.getLogger("redis").setLevel(logging.WARNING)
logging.getLogger("apscheduler").setLevel(logging.WARNING)
