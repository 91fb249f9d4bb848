"""Warning notifications for operators.

Governance code logs through ``sanic.log.logger`` and the CLI through the
``warden`` logger; both forward WARNING and above to Telegram when a token
is configured. A policy violation repeated by every sweep would otherwise
page once per interval, so identical messages are sent at most once per
``NOTIFY_REPEAT_TTL`` seconds.
"""

import logging
from typing import List

import cachetools
import notifiers.logging
import sanic.log

from warden import config


_HANDLER_NAME = "warden-notifications"


class RepeatFilter(logging.Filter):
    def __init__(self, ttl: float, maxsize: int = 512):
        super().__init__()
        self._sent = cachetools.TTLCache(maxsize=maxsize, ttl=ttl)

    def filter(self, record: logging.LogRecord) -> bool:
        key = (record.name, record.levelno, record.getMessage())
        if key in self._sent:
            return False
        self._sent[key] = True
        return True


def notification_handler() -> logging.Handler:
    handler = notifiers.logging.NotificationHandler(
        "telegram",
        defaults={
            "token": config.TELEGRAM_TOKEN,
            "chat_id": config.TELEGRAM_CHAT_ID,
        },
    )
    handler.setLevel(logging.WARNING)
    handler.setFormatter(
        logging.Formatter("merge-warden %(levelname)s - %(message)s")
    )
    handler.addFilter(RepeatFilter(config.NOTIFY_REPEAT_TTL))
    return handler


def get_log_handlers(*loggers: logging.Logger) -> List[logging.Handler]:
    """Attach one shared notification handler to ``loggers``.

    ``sanic.log.logger`` is always included. Calling this again does not
    attach a second handler.
    """
    if config.TELEGRAM_TOKEN is None:
        return []

    targets = [sanic.log.logger, *(lg for lg in loggers if lg is not sanic.log.logger)]
    existing = [
        h
        for target in targets
        for h in target.handlers
        if h.get_name() == _HANDLER_NAME
    ]
    if existing:
        handler = existing[0]
    else:
        handler = notification_handler()
        handler.set_name(_HANDLER_NAME)
    for target in targets:
        if handler not in target.handlers:
            target.addHandler(handler)
    return [handler]
