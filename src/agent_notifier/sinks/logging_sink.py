"""Sink that writes notifications to the log (headless and CI use)."""

import logging

logger = logging.getLogger(__name__)


class LogSink:
    """Logs every notification at INFO instead of showing it."""

    async def display(self, title: str, body: str) -> None:
        logger.info(f"[LogSink] {title} | {body}")

    async def prompt_decision(self, title: str, body: str, request_id: str) -> None:
        logger.info(f"[LogSink] {title} ({request_id}) | {body}")
