import logging

import notifiers.logging
import pytest
import sanic.log

from warden import config
from warden import logger as logger_module
from warden.logger import RepeatFilter, get_log_handlers


def record(message, level=logging.WARNING, name="sanic.root"):
    return logging.LogRecord(name, level, __file__, 1, message, (), None)


def test_repeat_filter_drops_identical_messages():
    repeat = RepeatFilter(ttl=3600)

    assert repeat.filter(record("Policy violation pr=org/repo#1"))
    assert not repeat.filter(record("Policy violation pr=org/repo#1"))
    assert repeat.filter(record("Policy violation pr=org/repo#2"))
    assert repeat.filter(record("Policy violation pr=org/repo#1", logging.ERROR))


def test_no_handlers_without_token(monkeypatch):
    monkeypatch.setattr(config, "TELEGRAM_TOKEN", None)
    assert get_log_handlers(logging.getLogger("warden")) == []


@pytest.fixture
def telegram(monkeypatch):
    monkeypatch.setattr(config, "TELEGRAM_TOKEN", "token")
    monkeypatch.setattr(config, "TELEGRAM_CHAT_ID", "chat")
    created = []

    def notification_handler():
        handler = logging.NullHandler()
        created.append(handler)
        return handler

    monkeypatch.setattr(logger_module, "notification_handler", notification_handler)
    yield created
    for target in (sanic.log.logger, logging.getLogger("warden")):
        for handler in created:
            target.removeHandler(handler)


def test_handler_shared_by_sanic_and_cli_loggers(telegram):
    cli_logger = logging.getLogger("warden")

    handlers = get_log_handlers(cli_logger)

    assert handlers == telegram
    assert handlers[0] in sanic.log.logger.handlers
    assert handlers[0] in cli_logger.handlers


def test_real_handler_is_notification_handler(monkeypatch):
    monkeypatch.setattr(config, "TELEGRAM_TOKEN", "token")
    monkeypatch.setattr(config, "TELEGRAM_CHAT_ID", "chat")

    handler = logger_module.notification_handler()

    assert isinstance(handler, notifiers.logging.NotificationHandler)
    assert handler.level == logging.WARNING
    assert any(isinstance(f, RepeatFilter) for f in handler.filters)


def test_repeated_setup_does_not_stack_handlers(telegram):
    cli_logger = logging.getLogger("warden")

    first = get_log_handlers(cli_logger)
    second = get_log_handlers(cli_logger)

    assert first == second
    assert len(telegram) == 1
    assert cli_logger.handlers.count(first[0]) == 1


def test_cli_setup_forwards_governance_warnings(telegram):
    from warden import cli

    cli.init()

    assert len(telegram) == 1
    assert telegram[0] in sanic.log.logger.handlers
    assert telegram[0] in cli.logger.handlers
