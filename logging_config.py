"""
Console and file logging for model runs.

The model modules only create module loggers; the Streamlit app (or a
script driving `SedimentModel.run`) calls `setup_logging` once.
"""
import logging
import sys
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: int = logging.INFO, log_file: Optional[str] = None) -> None:
    """
    Route every model logger (savepoint progress, stability and POM
    fraction warnings) to stdout, and optionally to `log_file`.
    """
    root = logging.getLogger()
    root.setLevel(level)

    # the Streamlit script reruns on every interaction
    if root.hasHandlers():
        root.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT, datefmt='%H:%M:%S')
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode='w', encoding='utf-8'))
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    logging.getLogger(__name__).info("Logging initialized.")
