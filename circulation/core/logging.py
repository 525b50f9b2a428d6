"""Logging configuration for the circulation engine."""
import logging
import sys
from datetime import datetime


class ColoredFormatter(logging.Formatter):
    """Custom formatter with colors for different log levels."""

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",
    }

    def format(self, record):
        color = self.COLORS.get(record.levelname, self.COLORS["RESET"])
        reset = self.COLORS["RESET"]
        record.levelname = f"{color}{record.levelname}{reset}"
        record.name = f"\033[34m{record.name}{reset}"
        return super().format(record)


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Set up logging configuration."""
    logger = logging.getLogger("circulation")
    logger.setLevel(getattr(logging, level.upper()))

    # Remove existing handlers
    logger.handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG)
    console_formatter = ColoredFormatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%H:%M:%S",
    )
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    logger.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name."""
    return logging.getLogger(f"circulation.{name}")


class SweepLogger:
    """Structured output for one run of a periodic sweep."""

    def __init__(self, sweep: str, as_of: datetime):
        self.sweep = sweep
        self.as_of = as_of
        self.logger = get_logger(f"sweep.{sweep}")
        self.start_time = datetime.now()

    def start(self, candidates: int):
        self.logger.info(f"SWEEP START: {self.sweep} as of {self.as_of.isoformat()} ({candidates} candidate(s))")

    def item(self, entity: str, entity_id: int, message: str):
        self.logger.debug(f"  → {entity} {entity_id}: {message}")

    def cascade(self, book_id: int, reservation_id: int):
        self.logger.info(f"  ↻ Book {book_id}: hold passed to reservation {reservation_id}")

    def end(self, processed: int):
        self.logger.info(f"SWEEP COMPLETED: {self.sweep} processed {processed} in {self.elapsed_time()}")

    def elapsed_time(self) -> str:
        """Get elapsed time since start."""
        elapsed = datetime.now() - self.start_time
        return str(elapsed).split(".")[0]


# Initialize default logging
setup_logging()
