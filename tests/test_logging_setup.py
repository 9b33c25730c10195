import logging

import pytest

from news_cluster_pipeline.logging.setup import NOISY_LOGGERS, setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    before, level = set(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        if handler not in before:
            root.removeHandler(handler)
    root.setLevel(level)


def test_setup_logging_installs_single_stdout_handler():
    setup_logging("debug")
    setup_logging("debug")
    root = logging.getLogger()
    assert root.level == logging.DEBUG
    assert len(root.handlers) == 1


def test_setup_logging_unknown_level_falls_back_to_info():
    setup_logging("loud")
    assert logging.getLogger().level == logging.INFO
    setup_logging("basicConfig")
    assert logging.getLogger().level == logging.INFO


def test_setup_logging_quiets_client_libraries():
    setup_logging("DEBUG")
    for name in NOISY_LOGGERS:
        assert logging.getLogger(name).level == logging.WARNING


def test_setup_logging_writes_to_stdout(capsys):
    setup_logging("INFO", format_string="%(levelname)s %(message)s")
    logging.getLogger("news_cluster_pipeline.test").info("hello")
    assert "INFO hello" in capsys.readouterr().out
