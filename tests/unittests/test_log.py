# This file is part of guestnet. See LICENSE file for license information.

"""Tests for guestnet.log"""

import logging

import pytest

from guestnet import log

LOGCFG = """\
[loggers]
keys=root

[handlers]
keys=stderr

[formatters]
keys=simple

[logger_root]
level=INFO
handlers=stderr

[handler_stderr]
class=StreamHandler
level=INFO
formatter=simple
args=(sys.stderr,)

[formatter_simple]
format=%(levelname)s %(message)s
"""


@pytest.fixture(autouse=True)
def restore_logging():
    """fileConfig replaces root handlers and disables existing loggers."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    disabled = {
        name: logger.disabled
        for name, logger in logging.root.manager.loggerDict.items()
        if isinstance(logger, logging.Logger)
    }
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)
    for name, logger in logging.root.manager.loggerDict.items():
        if isinstance(logger, logging.Logger):
            logger.disabled = disabled.get(name, False)


class TestSetupLogging:
    def test_basic_logging_by_default(self, mocker):
        m_basic = mocker.patch("guestnet.log.setup_basic_logging")
        log.setup_logging({}, level=logging.DEBUG)
        m_basic.assert_called_once_with(level=logging.DEBUG)

    def test_basic_logging_disabled(self, mocker):
        m_basic = mocker.patch("guestnet.log.setup_basic_logging")
        log.setup_logging({"log_basic": False})
        assert 0 == m_basic.call_count

    def test_logcfg_string(self, mocker):
        m_basic = mocker.patch("guestnet.log.setup_basic_logging")
        log.setup_logging({"logcfg": LOGCFG})
        assert 0 == m_basic.call_count
        assert logging.INFO == logging.getLogger().level

    def test_log_cfgs_list_of_lines(self, mocker):
        m_basic = mocker.patch("guestnet.log.setup_basic_logging")
        log.setup_logging({"log_cfgs": [LOGCFG.splitlines()]})
        assert 0 == m_basic.call_count

    def test_logcfg_file(self, mocker, tmp_path):
        m_basic = mocker.patch("guestnet.log.setup_basic_logging")
        cfgfile = tmp_path / "logging.conf"
        cfgfile.write_text(LOGCFG)
        log.setup_logging({"logcfg": str(cfgfile)})
        assert 0 == m_basic.call_count

    def test_setup_basic_logging(self):
        log.setup_basic_logging(level=logging.WARNING)
        root = logging.getLogger()
        assert logging.WARNING == root.level
        assert any(
            isinstance(h, logging.StreamHandler)
            and h.level == logging.WARNING
            for h in root.handlers
        )

    def test_flush_loggers(self, mocker):
        handler = logging.StreamHandler()
        m_flush = mocker.patch.object(handler, "flush")
        logger = logging.getLogger("guestnet.test_flush")
        logger.addHandler(handler)
        try:
            log.flush_loggers(logger)
        finally:
            logger.removeHandler(handler)
        m_flush.assert_called_once_with()

    def test_reset_logging(self):
        root = logging.getLogger()
        handler = logging.StreamHandler()
        root.addHandler(handler)
        root.setLevel(logging.DEBUG)
        log.reset_logging()
        assert handler not in root.handlers
        assert logging.NOTSET == root.level
