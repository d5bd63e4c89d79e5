import logging

from swipetriage.utils.console_logger import ensure_console_logger


def test_handler_is_installed_once():
    logger = logging.getLogger("swipetriage.tests.console")
    try:
        first = ensure_console_logger(logger, "test-console", level=logging.WARNING)
        second = ensure_console_logger(logger, "test-console", level=logging.DEBUG)

        named = [h for h in logger.handlers if getattr(h, "name", None) == "test-console"]
        assert named == [first]
        assert second is first
        assert first.level == logging.DEBUG
        assert logger.level == logging.DEBUG
    finally:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)


def test_reinstall_after_stream_was_closed(monkeypatch):
    import io

    logger = logging.getLogger("swipetriage.tests.console.closed")
    first_out = io.StringIO()
    second_out = io.StringIO()
    try:
        monkeypatch.setattr("sys.stdout", first_out)
        handler = ensure_console_logger(logger, "test-closed", level=logging.INFO)
        first_out.close()

        monkeypatch.setattr("sys.stdout", second_out)
        assert ensure_console_logger(logger, "test-closed", level=logging.INFO) is handler
        logger.info("still visible")

        assert "still visible" in second_out.getvalue()
    finally:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
