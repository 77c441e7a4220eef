import logging
import sys


def setup_logging(level=logging.INFO):
    """Configure root logger for the backend app."""
    root = logging.getLogger()
    root.setLevel(level)
    if any(getattr(h, "_drivecrm", False) for h in root.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        "%Y-%m-%d %H:%M:%S",
    ))
    handler._drivecrm = True
    root.addHandler(handler)

    # silence noisy libraries
    logging.getLogger("psycopg").setLevel(logging.WARNING)
    logging.getLogger("psycopg.pool").setLevel(logging.WARNING)
