# genre_pipeline/utils/logging_config.py
import functools
import logging
import sys
import time
import warnings
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

LOGGER_NAMESPACE = "genre_pipeline"

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'

# Libraries that log chatty INFO records during a run
QUIET_LOGGERS = ("matplotlib", "PIL", "mlflow", "alembic", "great_expectations", "urllib3", "httpx")

def setup_logging(
    log_level: str = "INFO",
    log_dir: Union[str, Path] = "logs",
    log_to_file: bool = True,
    log_to_console: bool = True,
    log_format: Optional[str] = None
) -> logging.Logger:
    """
    Route pipeline logs to the console and to a per-run file

    Args:
        log_level: Name of a logging level, case-insensitive
        log_dir: Directory receiving ``pipeline_<timestamp>.log``
        log_to_file: Attach the file handler
        log_to_console: Attach a stdout handler
        log_format: Format string; defaults to one carrying function and line

    Returns:
        The ``genre_pipeline`` logger
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Invalid log level: {log_level}")

    formatter = logging.Formatter(log_format or DEFAULT_FORMAT)

    root = logging.getLogger()
    root.setLevel(level)
    # Repeated CLI invocations in one process must not stack handlers
    root.handlers.clear()

    file_path = None
    if log_to_file:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        file_path = Path(log_dir) / f"pipeline_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
        root.addHandler(_make_handler(logging.FileHandler(file_path, encoding='utf-8'), level, formatter))

    if log_to_console:
        root.addHandler(_make_handler(logging.StreamHandler(sys.stdout), level, formatter))

    configure_third_party_logging()

    pipeline_logger = logging.getLogger(LOGGER_NAMESPACE)
    pipeline_logger.info(f"Logging initialized at {logging.getLevelName(level)}"
                         + (f", writing to {file_path}" if file_path else ""))
    return pipeline_logger

def _make_handler(handler: logging.Handler, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler

def get_logger(name: str) -> logging.Logger:
    """Logger below the ``genre_pipeline`` namespace"""
    if name == LOGGER_NAMESPACE or name.startswith(LOGGER_NAMESPACE + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")

def log_execution_time(func):
    """Log how long ``func`` ran, and whether it raised"""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger = get_logger(func.__module__)
        started = time.perf_counter()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            logger.error(f"{func.__qualname__} failed after {time.perf_counter() - started:.2f}s: {e}")
            raise
        logger.info(f"{func.__qualname__} finished in {time.perf_counter() - started:.2f}s")
        return result

    return wrapper

class PipelineLogger:
    """Times one named step; exceptions are logged and re-raised"""

    def __init__(self, step_name: str, logger: Optional[logging.Logger] = None):
        self.step_name = step_name
        self.logger = logger or get_logger("pipeline")
        self.started = None
        self.duration = None

    def __enter__(self):
        self.started = time.perf_counter()
        self.logger.info(f"{self.step_name}: started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration = time.perf_counter() - self.started
        if exc_type is None:
            self.logger.info(f"{self.step_name}: done in {self.duration:.2f}s")
        else:
            self.logger.error(f"{self.step_name}: failed after {self.duration:.2f}s ({exc_type.__name__}: {exc_val})")
        return False

    def log_metric(self, name: str, value: Union[int, float, str]):
        self.logger.info(f"{self.step_name}: {name} = {value}")

def configure_third_party_logging():
    """Raise noisy dependency loggers to WARNING"""
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    warnings.filterwarnings('ignore', category=FutureWarning, module='sklearn')
