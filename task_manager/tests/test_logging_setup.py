import logging

import pytest

from src.api.logging_setup import _ConsoleNoiseFilter, setup_logging


@pytest.fixture()
def restore_root_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()
    for h in handlers:
        root.addHandler(h)
    root.setLevel(level)
    logging.captureWarnings(False)


def _record(name: str, level: int) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, "msg", None, None)


@pytest.mark.parametrize(
    "name,level,shown",
    [
        ("src.api.main", logging.DEBUG, True),
        ("uvicorn.error", logging.INFO, True),
        ("uvicorn.access", logging.WARNING, False),
        ("httpx", logging.INFO, False),
        ("httpx", logging.WARNING, True),
    ],
)
def test_console_filter(name, level, shown):
    assert _ConsoleNoiseFilter().filter(_record(name, level)) is shown


def test_file_handler_receives_debug(restore_root_logging, tmp_path):
    log_file = tmp_path / "logs" / "api.log"
    setup_logging("INFO", log_file=log_file)

    assert len(restore_root_logging.handlers) == 2
    logging.getLogger("src.api.test").debug("written to file only")
    for h in restore_root_logging.handlers:
        h.flush()
    assert "written to file only" in log_file.read_text(encoding="utf-8")
