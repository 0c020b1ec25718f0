import logging
import sys
from datetime import datetime
from pathlib import Path

from ladder.config import Config

ROOT_LOGGER = 'ladder'
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def _configure_root() -> logging.Logger:
    """Attach console and daily file handlers to the package logger, once per process."""
    root = logging.getLogger(ROOT_LOGGER)
    if root.handlers:
        return root

    level = logging.DEBUG if Config.DEBUG else logging.INFO
    root.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(formatter)
    root.addHandler(console)

    if Config.LOG_DIR:
        log_dir = Path(Config.LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)
        daily = logging.FileHandler(
            log_dir / f'ladder_bot_{datetime.now().strftime("%Y%m%d")}.log',
            encoding='utf-8'
        )
        # File keeps swap steps and lock traces even when the console is at INFO
        daily.setLevel(logging.DEBUG)
        daily.setFormatter(formatter)
        root.addHandler(daily)

    return root


def setup_logger(name: str) -> logging.Logger:
    """
    Logger for a ladder module.

    Handlers live on the `ladder` package logger; module loggers under it
    propagate there, so each record is written once however many modules
    ask for a logger.
    """
    root = _configure_root()
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + '.'):
        return logging.getLogger(name)
    # Loggers outside the package (e.g. __main__) get their own child
    return root.getChild(name)
