import logging
from typing import Literal, Protocol

logger = logging.getLogger(__name__)

NotificationKind = Literal["success", "info", "warning", "error"]

_LEVELS = {
	"success": logging.INFO,
	"info": logging.INFO,
	"warning": logging.WARNING,
	"error": logging.ERROR,
}


class Notifier(Protocol):
	def notify(self, message: str, kind: NotificationKind = "info") -> None: ...


class LoggingNotifier:
	def __init__(self, name: str = "customizer.notifications"):
		self.log = logging.getLogger(name)

	def notify(self, message: str, kind: NotificationKind = "info") -> None:
		self.log.log(_LEVELS.get(kind, logging.INFO), "[%s] %s", kind, message)
