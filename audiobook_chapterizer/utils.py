import logging
import sys
from typing import Optional


def format_duration(seconds: Optional[float]) -> str:
    """Formats seconds as HH:MM:SS.cc, or '??' when unknown."""
    if seconds is None:
        return "??"
    centis = int(round(max(seconds, 0.0) * 100))
    whole, centis = divmod(centis, 100)
    hours = whole // 3600
    minutes = (whole % 3600) // 60
    secs = whole % 60
    return f"{hours:02d}:{minutes:02d}:{secs:02d}.{centis:02d}"


def setup_logging(level=logging.INFO):
    """Configures the root logger with a standard format."""
    logging.basicConfig(
        level=level,
        format="[%(asctime)s] %(levelname)s - %(name)s - %(message)s",
        datefmt="%H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )


def get_logger(name: str):
    return logging.getLogger(name)
