"""
Transient user notifications.

Engines report every mutation outcome through a Notifier: exactly one
success/error/warning per outcome. The UI layer plugs in its own
implementation (toasts, status bar); LoggingNotifier is the default.
"""

from abc import ABC, abstractmethod

from cartsync.logging import get_logger, sanitize_string_for_logging

logger = get_logger(__name__)


class Notifier(ABC):
    """Sink for transient notifications and sign-in prompts."""

    @abstractmethod
    def success(self, message: str, key: str | None = None) -> None: ...

    @abstractmethod
    def error(self, message: str, key: str | None = None) -> None: ...

    @abstractmethod
    def warning(self, message: str, key: str | None = None) -> None: ...

    @abstractmethod
    def loading(self, message: str, key: str | None = None) -> None:
        """Show a pending state; a later notification with the same key replaces it."""

    @abstractmethod
    def prompt_sign_in(self) -> None:
        """Ask the user to authenticate (open the sign-in dialog)."""


class LoggingNotifier(Notifier):
    """Writes notifications to the log."""

    def success(self, message: str, key: str | None = None) -> None:
        logger.info("[notify] %s", sanitize_string_for_logging(message, 120))

    def error(self, message: str, key: str | None = None) -> None:
        logger.error("[notify] %s", sanitize_string_for_logging(message, 120))

    def warning(self, message: str, key: str | None = None) -> None:
        logger.warning("[notify] %s", sanitize_string_for_logging(message, 120))

    def loading(self, message: str, key: str | None = None) -> None:
        logger.info("[notify:%s] %s", key or "loading", sanitize_string_for_logging(message, 120))

    def prompt_sign_in(self) -> None:
        logger.info("[notify] sign-in requested")
