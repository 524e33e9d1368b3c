"""Per-run diagnostics channel."""

import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class GradingLog:
    """Collects the info and error messages of a single grading run.

    Each run owns its log and hands it back with the result. Every message is
    mirrored to the ``build_grading`` logger as well.
    """

    title: str = "Grading"
    info_messages: list[str] = field(default_factory=list)
    error_messages: list[str] = field(default_factory=list)

    def info(self, message: str, *args) -> None:
        text = message % args if args else message
        self.info_messages.append(text)
        logger.info("[%s] %s", self.title, text)

    def error(self, message: str, *args) -> None:
        text = message % args if args else message
        self.error_messages.append(text)
        logger.error("[%s] %s", self.title, text)

    def exception(self, exc: BaseException, message: str, *args) -> None:
        text = message % args if args else message
        self.error(f"{text}: {exc}")

    @property
    def has_errors(self) -> bool:
        return bool(self.error_messages)

    def to_dict(self) -> dict:
        return {"info": list(self.info_messages), "errors": list(self.error_messages)}
