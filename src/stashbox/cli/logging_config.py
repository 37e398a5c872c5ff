"""Logging setup for the stashbox command line."""

import logging
import sys

# third-party loggers that are noisy at INFO
_QUIET_LOGGERS = ("keyring",)


def configure_logging(level: int = logging.INFO) -> None:
    # stdout carries command output (list, status); diagnostics go to stderr
    logging.basicConfig(
        level=level,
        format="stashbox %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
