"""Shared logging configuration for the tournament tools.

Call ``configure_logging()`` once at a CLI entry point. Repeated calls do
nothing once the root logger has handlers.
"""

import logging
import os

LOG_DIR = "logs"
LOG_FILE = "tournament.log"


def configure_logging(level: int = logging.INFO, log_dir: str = LOG_DIR) -> None:
    """Attach a console handler and, when ``log_dir`` is writable, a file handler.

    Only configures if the root logger has no handlers.
    """
    root = logging.getLogger()
    if root.handlers:
        return

    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)
    root.setLevel(level)

    try:
        os.makedirs(log_dir, exist_ok=True)
        fh = logging.FileHandler(os.path.join(log_dir, LOG_FILE), mode="a")
    except OSError as e:
        root.warning("File logging disabled: %s", e)
        return
    fh.setFormatter(formatter)
    root.addHandler(fh)
