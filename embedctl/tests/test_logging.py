import logging

from embedctl.logging import setup_logger


def test_log_file_keeps_debug_records(tmp_path):
    log_file = tmp_path / "logs" / "embedctl.log"
    logger = setup_logger("embedctl.test.file", logging.INFO, str(log_file))
    console = logger.handlers[0]

    logger.getChild("utils").debug("stdout: captured output")
    for handler in logger.handlers:
        handler.flush()

    assert "stdout: captured output" in log_file.read_text()
    assert console.level == logging.INFO
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def test_without_log_file_logger_follows_level():
    logger = setup_logger("embedctl.test.console", logging.WARNING)
    assert logger.level == logging.WARNING

    setup_logger("embedctl.test.console", logging.DEBUG)
    assert logger.level == logging.DEBUG
    assert logger.handlers[0].level == logging.DEBUG
    logger.handlers.clear()
