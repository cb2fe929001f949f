"""
Logging setup for the API process. Modules log through logging.getLogger(__name__).
"""
import logging
import sys


def setup_logging(level: str = "INFO"):
    """Attach a single stdout handler to the root logger"""
    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(
        '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    root_logger.addHandler(console_handler)

    # httpx logs every Supabase call at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return root_logger
