import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

import colorlog

FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)-8s - %(message)s'


def setup_logging(level: Union[str, int] = logging.INFO, log_dir: Optional[str] = None):
    """
    Configure logging to the console with colors and, when log_dir is given,
    to a per-run file as well.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    # Console formatter (with colors)
    console_formatter = colorlog.ColoredFormatter(
        "%(green)s%(asctime)s%(reset)s - %(purple)s%(name)s - %(log_color)s%(levelname)s%(reset)s - %(message)s",
        log_colors={
            'DEBUG':    'cyan',
            'INFO':     'blue',
            'WARNING':  'yellow',
            'ERROR':    'red',
            'CRITICAL': 'red,bg_white',
        },
        secondary_log_colors={},
        style='%'
    )
    console_handler = colorlog.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(console_formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove any existing handlers so repeated calls (warm lambda containers) don't duplicate output
    root_logger.handlers = []
    root_logger.addHandler(console_handler)

    if log_dir:
        # NOTE: keeping a different formatter since .log can't handle colors
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        log_file = log_path / f"aggregator_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        root_logger.addHandler(file_handler)

    # botocore is chatty at debug level
    logging.getLogger('botocore').setLevel(max(level, logging.INFO))
    return root_logger
