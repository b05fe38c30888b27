"""File-change notifications from a long-running watcher command.

The command (``watch.change_command``, e.g. ``pnpm turbo watch --filter=*``)
is spawned once; each output line that reports a change becomes a
ChangeEvent with the affected path as its hint when one can be found.
Bare path lines, as printed by most file watchers, count as changes.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import TYPE_CHECKING

from brain_monitor.core.models import ChangeEvent
from brain_monitor.domain.parsing import clean_line
from brain_monitor.infra.tools.command_runner import CommandRunner

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

    from brain_monitor.core.protocols import CommandRunnerPort, LineCallback

logger = logging.getLogger(__name__)

_CHANGE_RE = re.compile(r"\b(changed|added|deleted|removed|renamed)\b", re.IGNORECASE)
_PATH_RE = re.compile(r"[\w@./\\-]*[\w-]\.[A-Za-z0-9]+\b")
# inotifywait event names, as in "dir/ MODIFY file.ts" or "dir/file.ts MODIFY"
_INOTIFY_KINDS = {
    "MODIFY": "changed",
    "CLOSE_WRITE": "changed",
    "ATTRIB": "changed",
    "CREATE": "added",
    "MOVED_TO": "added",
    "DELETE": "deleted",
    "MOVED_FROM": "deleted",
}
_INOTIFY_RE = re.compile(
    r"^(?P<dir>\S*?)\s*\b(?P<events>(?:%s)(?:,[A-Z_]+)*)\b\s*(?P<file>\S*)$"
    % "|".join(_INOTIFY_KINDS)
)


def _inotify_event(text: str) -> ChangeEvent | None:
    match = _INOTIFY_RE.match(text)
    if match is None:
        return None
    first = match.group("events").split(",")[0]
    path = match.group("dir") + match.group("file")
    return ChangeEvent(kind=_INOTIFY_KINDS[first], path=path or None)


def parse_change_line(line: str) -> ChangeEvent | None:
    """Turn one watcher output line into a ChangeEvent, or None.

    Recognised forms are a line naming a change verb, an inotifywait event
    line, and a line holding nothing but a file path (reported as changed).
    """
    text = clean_line(line).strip()
    if not text:
        return None
    verb = _CHANGE_RE.search(text)
    if verb is not None:
        paths = _PATH_RE.findall(text)
        return ChangeEvent(kind=verb.group(1).lower(), path=paths[-1] if paths else None)
    event = _inotify_event(text)
    if event is not None:
        return event
    if _PATH_RE.fullmatch(text):
        return ChangeEvent(kind="changed", path=text)
    return None


class CommandChangeSource:
    """ChangeSource backed by an external watcher process."""

    def __init__(
        self,
        command: str,
        cwd: Path,
        runner: CommandRunnerPort | None = None,
    ) -> None:
        self.command = command
        self.cwd = cwd
        self._runner = runner or CommandRunner(cwd=cwd)
        self._task: asyncio.Task[None] | None = None

    async def events(self) -> AsyncIterator[ChangeEvent]:
        queue: asyncio.Queue[ChangeEvent | None] = asyncio.Queue()

        def on_line(stream: str, line: str) -> None:
            event = parse_change_line(line)
            if event is not None:
                queue.put_nowait(event)

        self._task = asyncio.create_task(self._watch(on_line, queue))
        while True:
            event = await queue.get()
            if event is None:
                return
            yield event

    async def _watch(
        self,
        on_line: LineCallback,
        queue: asyncio.Queue[ChangeEvent | None],
    ) -> None:
        try:
            result = await self._runner.run_async(
                self.command, shell=True, cwd=self.cwd, on_line=on_line
            )
            logger.info(
                "Change watcher exited with %s; continuing in polling mode",
                result.returncode,
            )
        except OSError as e:
            logger.warning("Could not start change watcher %r: %s", self.command, e)
        finally:
            queue.put_nowait(None)

    async def close(self) -> None:
        if self._task is None or self._task.done():
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
