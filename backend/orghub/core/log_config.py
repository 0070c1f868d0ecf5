"""
Logging setup.

Modules log through logging.getLogger(__name__); this only installs the
root handler and level once at startup.
"""

import logging
import sys


def configure_logging(log_level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s - orghub - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
