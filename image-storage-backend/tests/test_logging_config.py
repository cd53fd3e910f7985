import logging
from logging.handlers import RotatingFileHandler

import pytest

from imagestore.logging_config import LOG_FILE, setup_logging


@pytest.fixture
def bare_root(monkeypatch):
    root = logging.getLogger()
    monkeypatch.setattr(root, "handlers", [])
    level = root.level
    yield root
    for handler in root.handlers:
        handler.close()
    root.setLevel(level)


def test_setup_logging_writes_rotating_file(bare_root, tmp_path):
    log_dir = tmp_path / "logs"
    setup_logging(level="debug", log_dir=str(log_dir))
    assert bare_root.level == logging.DEBUG
    assert any(isinstance(h, RotatingFileHandler) for h in bare_root.handlers)

    logging.getLogger("imagestore.storage").info("saved slip")
    for handler in bare_root.handlers:
        handler.flush()
    assert "saved slip" in (log_dir / LOG_FILE).read_text()


def test_setup_logging_runs_once(bare_root, tmp_path):
    setup_logging(log_dir=str(tmp_path))
    handlers = list(bare_root.handlers)
    setup_logging(log_dir=str(tmp_path))
    assert bare_root.handlers == handlers


def test_unwritable_log_dir_keeps_console_logging(bare_root, tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("occupied")
    setup_logging(log_dir=str(blocker / "logs"))
    assert [type(h) for h in bare_root.handlers] == [logging.StreamHandler]
