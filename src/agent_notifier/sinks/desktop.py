"""Desktop notification sink backed by the platform notifier binary.

- macOS: terminal-notifier when installed, otherwise osascript
- Linux/BSD: notify-send

Permission prompts are shown as ordinary notifications that carry the
request id; the decision comes back through the respond route.
"""

import asyncio
import logging
import platform
import shutil

from ..errors import SinkDeliveryError

logger = logging.getLogger(__name__)

NOTIFIER_TIMEOUT_SECONDS = 10.0


def _applescript_quote(text: str) -> str:
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


async def _reap(process: asyncio.subprocess.Process) -> None:
    """Kill a notifier process that is still running and wait for it."""
    if process.returncode is None:
        process.kill()
    await process.wait()


class DesktopSink:
    """Shows notifications through the OS notifier.

    Attributes:
        play_sound: Whether to ask the notifier for its default sound
        respond_hint: Optional line appended to permission prompts telling
            the user where to respond
    """

    def __init__(self, play_sound: bool = True, respond_hint: str | None = None) -> None:
        self.play_sound = play_sound
        self.respond_hint = respond_hint
        self._system = platform.system()

    async def display(self, title: str, body: str) -> None:
        await self._run(self._build_command(title, body, urgency="normal"))

    async def prompt_decision(self, title: str, body: str, request_id: str) -> None:
        if self.respond_hint:
            body = f"{body}\n{self.respond_hint.format(request_id=request_id)}"
        await self._run(self._build_command(title, body, urgency="critical"))

    def _build_command(self, title: str, body: str, urgency: str) -> list[str]:
        """Build the notifier command line for this platform.

        Raises:
            SinkDeliveryError: If no supported notifier is available
        """
        if self._system == "Darwin":
            if notifier := shutil.which("terminal-notifier"):
                cmd = [notifier, "-title", title, "-message", body]
                if self.play_sound:
                    cmd += ["-sound", "default"]
                return cmd
            script = f"display notification {_applescript_quote(body)} with title {_applescript_quote(title)}"
            if self.play_sound:
                script += ' sound name "default"'
            return ["osascript", "-e", script]

        if notifier := shutil.which("notify-send"):
            cmd = [notifier, "-u", urgency, "-a", "Agent Notifier"]
            if self.play_sound:
                cmd += ["-h", "string:sound-name:message-new-instant"]
            return cmd + [title, body]

        raise SinkDeliveryError(f"No desktop notifier available on {self._system}")

    async def _run(self, cmd: list[str]) -> None:
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise SinkDeliveryError(f"Failed to start {cmd[0]}: {e}") from e

        try:
            _, stderr = await asyncio.wait_for(
                process.communicate(), timeout=NOTIFIER_TIMEOUT_SECONDS
            )
        except asyncio.TimeoutError:
            await _reap(process)
            raise SinkDeliveryError(f"{cmd[0]} timed out") from None
        except asyncio.CancelledError:
            await _reap(process)
            raise

        if process.returncode != 0:
            detail = stderr.decode(errors="replace").strip() or f"exit code {process.returncode}"
            raise SinkDeliveryError(f"{cmd[0]} failed: {detail}")

        logger.debug(f"[DesktopSink] Delivered via {cmd[0]}")
