import logging
import os
import sys


def setup_logging(level: int | None = None):
    '''Configure root logger for the entire codebase.'''
    if level is None:
        level = logging.getLevelName(os.getenv('LOG_LEVEL', 'INFO').upper())
        if not isinstance(level, int):
            level = logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)],  # logs to console
    )
