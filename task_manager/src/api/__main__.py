"""
Run the Task Manager API with uvicorn.

Usage:
    python -m src.api
"""
from __future__ import annotations

import uvicorn

from .logging_setup import setup_logging
from .settings import get_settings


def main() -> None:
    settings = get_settings()
    setup_logging(settings.log_level, log_file=settings.log_file)
    uvicorn.run("src.api.main:app", host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
