import logging
import os

from rich.console import Console
from rich.logging import RichHandler

NOISY_LOGGERS = {
    "sqlalchemy.engine": logging.WARNING,
    "sqlalchemy.pool": logging.WARNING,
    "sqlalchemy.orm": logging.WARNING,
    "uvicorn.access": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "urllib3": logging.WARNING,
    "faiss": logging.WARNING,
}


class CustomLogger:
    """
    Rich-backed logging setup shared by the api, db, cache and core packages.

    The handler is installed once on the root logger; every later
    instance only hands out named loggers.
    """

    _configured = False

    def __init__(self, level: str | None = None):
        self.level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
        if not CustomLogger._configured:
            self._configure()
            CustomLogger._configured = True

    def _configure(self) -> None:
        console = Console(stderr=True)

        # Rich handles formatting
        logging.basicConfig(
            level=self.level,
            format="%(message)s",
            datefmt="[%H:%M:%S]",
            handlers=[
                RichHandler(
                    console=console,
                    rich_tracebacks=True,
                    tracebacks_show_locals=False,
                    show_time=True,
                    show_level=True,
                    show_path=True,
                )
            ],
        )

        for name, lvl in NOISY_LOGGERS.items():
            logging.getLogger(name).setLevel(lvl)

    def get_logger(self, name: str = __name__) -> logging.Logger:
        return logging.getLogger(name)
