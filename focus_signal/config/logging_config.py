import logging
from pathlib import Path
from typing import Optional

from focus_signal.config.settings import settings

def setup_logging(debug: bool = False, log_dir: Optional[Path] = None):
    """Configure logging for the application"""
    # Create logs directory if it doesn't exist
    log_dir = log_dir or settings.LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=logging.DEBUG if (debug or settings.DEBUG) else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_dir / "focus_signal.log"),
            logging.StreamHandler()  # Also log to console
        ]
    )

    logger = logging.getLogger(__name__)
    logger.debug("Logging initialized")
