from __future__ import annotations

import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

MAX_LOG_BYTES = 2_000_000
LOG_BACKUPS = 5

# logger name -> file that receives its records on top of app.log
LOG_AREAS: dict[str, str] = {
    "atenea.sales": "sales.log",
    "atenea.stock": "stock.log",
    "atenea.services.expense_service": "expenses.log",
}


class JsonFormatter(logging.Formatter):
    """One JSON object per line, keeping the key=value message as written."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "where": f"{record.module}:{record.lineno}",
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def _file_handler(path: Path, level: int) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8")
    handler.setFormatter(JsonFormatter(datefmt="%Y-%m-%d %H:%M:%S"))
    handler.setLevel(level)
    return handler


def setup_logging(logs_dir: Path, level: int = logging.INFO) -> None:
    """Routes everything to app.log, errors to errors.log and each area to its own file.

    Calling it again is a no-op once the root logger has handlers.
    """
    logs_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(level)
    if root.handlers:
        return

    root.addHandler(_file_handler(logs_dir / "app.log", logging.INFO))
    root.addHandler(_file_handler(logs_dir / "errors.log", logging.ERROR))

    for name, filename in LOG_AREAS.items():
        area = logging.getLogger(name)
        area.addHandler(_file_handler(logs_dir / filename, logging.INFO))
        area.setLevel(logging.INFO)
