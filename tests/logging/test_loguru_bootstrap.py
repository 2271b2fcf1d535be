import logging
from pathlib import Path

import pytest

pytest.importorskip("loguru", reason="loguru not installed")


@pytest.fixture
def restore_root_logging():
    handlers, level = list(logging.root.handlers), logging.root.level
    yield
    logging.root.handlers = handlers
    logging.root.setLevel(level)


def test_setup_logging_console_and_file(tmp_path: Path, restore_root_logging):
    from loguru import logger

    from imcdatasets.logging.loguru_bootstrap import setup_logging

    logfile = tmp_path / "app.log"
    setup_logging(level="INFO", console=True, file_path=logfile)
    logger.info("hello from loguru")

    logging.getLogger("imcdatasets.hub").info("hello from stdlib")
    logging.getLogger("imcdatasets.hub").debug("hidden below INFO")

    # removing sinks flushes and closes the file
    logger.remove()

    data = logfile.read_text(encoding="utf-8")
    assert "hello from loguru" in data
    assert "hello from stdlib" in data
    assert "hidden below INFO" not in data


def test_setup_logging_rejects_unknown_level(restore_root_logging):
    from imcdatasets.logging import setup_logging

    with pytest.raises(ValueError):
        setup_logging(level="chatty")


def test_import_has_no_side_effects():
    import importlib

    before = list(logging.root.handlers)
    m = importlib.import_module("imcdatasets.logging.loguru_bootstrap")
    assert hasattr(m, "setup_logging")
    assert logging.root.handlers == before
