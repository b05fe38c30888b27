"""Standardized subprocess execution with streaming and process-group kill.

CommandRunner is the single place brain-monitor spawns external tools:

- Commands may be an argv list or a shell string.
- ``env`` is merged over ``os.environ``.
- Children start in their own session so a timeout or interrupt can kill the
  whole process group (turbo/pnpm spawn deep trees).
- On timeout the group gets SIGTERM, then SIGKILL after a grace period, and
  the result reports ``returncode=124`` with ``timed_out=True``.
- The async path streams stdout/stderr line by line to an ``on_line``
  callback while still capturing the full text.

Active process group ids are tracked module-wide so an interrupt handler can
kill every in-flight child with ``CommandRunner.kill_active_process_groups()``.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
import signal
import subprocess
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

    from brain_monitor.core.protocols import LineCallback

logger = logging.getLogger(__name__)

# Exit code reported for commands killed by timeout (matches coreutils timeout)
TIMEOUT_EXIT_CODE = 124

# Seconds between SIGTERM and SIGKILL
DEFAULT_KILL_GRACE_SECONDS = 2.0

# StreamReader line limit; tool output lines (minified stack traces) can be long
_STREAM_LIMIT = 1024 * 1024

# Process group ids of running children, killed on interrupt
_SIGINT_FORWARD_PGIDS: set[int] = set()


@dataclass
class CommandResult:
    """Result of one command execution.

    Attributes:
        command: The command as passed to the runner.
        returncode: Exit code (124 when timed out).
        stdout: Captured standard output.
        stderr: Captured standard error.
        duration_seconds: Wall-clock runtime.
        timed_out: Whether the command was killed for exceeding its timeout.
    """

    command: list[str] | str
    returncode: int
    stdout: str = ""
    stderr: str = ""
    duration_seconds: float = 0.0
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def output(self) -> str:
        """stdout followed by stderr."""
        if self.stdout and self.stderr:
            return f"{self.stdout.rstrip(chr(10))}\n{self.stderr}"
        return self.stdout or self.stderr

    def stdout_tail(self, max_chars: int = 800, max_lines: int = 20) -> str:
        return _tail(self.stdout, max_chars=max_chars, max_lines=max_lines)

    def stderr_tail(self, max_chars: int = 800, max_lines: int = 20) -> str:
        return _tail(self.stderr, max_chars=max_chars, max_lines=max_lines)


def _tail(text: str, max_chars: int, max_lines: int) -> str:
    if not text:
        return ""
    lines = text.splitlines()
    if len(lines) > max_lines:
        lines = lines[-max_lines:]
    clipped = "\n".join(lines)
    if len(clipped) > max_chars:
        clipped = clipped[-max_chars:]
    return clipped


def _decode(data: bytes | str | None) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


class CommandRunner:
    """Runs external commands with timeouts and process-group cleanup."""

    def __init__(
        self,
        cwd: Path,
        timeout_seconds: float | None = None,
        kill_grace_seconds: float = DEFAULT_KILL_GRACE_SECONDS,
    ) -> None:
        """Initialize the runner.

        Args:
            cwd: Default working directory for commands.
            timeout_seconds: Default timeout, None for no limit.
            kill_grace_seconds: Delay between SIGTERM and SIGKILL.
        """
        self.cwd = cwd
        self.timeout_seconds = timeout_seconds
        self.kill_grace_seconds = kill_grace_seconds

    # ------------------------------------------------------------------
    # Process group registry
    # ------------------------------------------------------------------

    @classmethod
    def register_sigint_pgid(cls, pgid: int) -> None:
        _SIGINT_FORWARD_PGIDS.add(pgid)

    @classmethod
    def unregister_sigint_pgid(cls, pgid: int) -> None:
        _SIGINT_FORWARD_PGIDS.discard(pgid)

    @classmethod
    def kill_active_process_groups(cls) -> None:
        """Send SIGKILL to every tracked process group.

        Safe to call from a signal handler and safe to call repeatedly.
        No-op on Windows.
        """
        if sys.platform == "win32":
            return
        pgids = set(_SIGINT_FORWARD_PGIDS)
        for pgid in pgids:
            try:
                os.killpg(pgid, signal.SIGKILL)
            except (ProcessLookupError, PermissionError):
                pass
        _SIGINT_FORWARD_PGIDS.difference_update(pgids)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _resolve_process_group(use_process_group: bool | None) -> bool:
        if sys.platform == "win32":
            return False
        return True if use_process_group is None else use_process_group

    @staticmethod
    def _build_env(env: Mapping[str, str] | None) -> dict[str, str]:
        merged = dict(os.environ)
        if env:
            merged.update(env)
        return merged

    @staticmethod
    def _normalize_cmd(cmd: list[str] | str, shell: bool) -> list[str] | str:
        if shell:
            return cmd if isinstance(cmd, str) else shlex.join(cmd)
        return shlex.split(cmd) if isinstance(cmd, str) else list(cmd)

    @staticmethod
    def _send_signal(pid: int, sig: int, use_process_group: bool) -> None:
        try:
            if use_process_group:
                os.killpg(pid, sig)
            else:
                os.kill(pid, sig)
        except (ProcessLookupError, PermissionError):
            pass

    # ------------------------------------------------------------------
    # Sync execution
    # ------------------------------------------------------------------

    def run(
        self,
        cmd: list[str] | str,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
        use_process_group: bool | None = None,
        shell: bool = False,
        cwd: Path | None = None,
    ) -> CommandResult:
        """Run a command synchronously, buffering its output.

        Args:
            cmd: Command to run. Can be a list of strings or a shell string.
            env: Environment variables to set (merged with os.environ).
            timeout: Overrides the runner's default timeout.
            use_process_group: Kill the whole process group on timeout
                (default True on POSIX).
            shell: If True, run command through shell.
            cwd: Override working directory for this command.

        Returns:
            CommandResult with execution details.

        Raises:
            OSError: If the process could not be created.
        """
        effective_timeout = timeout if timeout is not None else self.timeout_seconds
        use_pg = self._resolve_process_group(use_process_group)
        start = time.monotonic()
        proc = subprocess.Popen(
            self._normalize_cmd(cmd, shell),
            cwd=cwd or self.cwd,
            env=self._build_env(env),
            shell=shell,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            start_new_session=use_pg,
        )
        if use_pg:
            self.register_sigint_pgid(proc.pid)
        timed_out = False
        try:
            try:
                out, err = proc.communicate(timeout=effective_timeout)
            except subprocess.TimeoutExpired:
                timed_out = True
                logger.debug("Command timed out after %ss: %s", effective_timeout, cmd)
                self._terminate_sync(proc, use_pg)
                try:
                    out, err = proc.communicate(timeout=self.kill_grace_seconds)
                except subprocess.TimeoutExpired:
                    # Orphaned children still hold the pipes open
                    out, err = b"", b""
        finally:
            if use_pg:
                self.unregister_sigint_pgid(proc.pid)
        return CommandResult(
            command=cmd,
            returncode=TIMEOUT_EXIT_CODE if timed_out else proc.returncode,
            stdout=_decode(out),
            stderr=_decode(err),
            duration_seconds=time.monotonic() - start,
            timed_out=timed_out,
        )

    def _terminate_sync(self, proc: subprocess.Popen[bytes], use_pg: bool) -> None:
        self._send_signal(proc.pid, signal.SIGTERM, use_pg)
        try:
            proc.wait(timeout=self.kill_grace_seconds)
            return
        except subprocess.TimeoutExpired:
            pass
        self._send_signal(proc.pid, signal.SIGKILL, use_pg)
        proc.wait()

    # ------------------------------------------------------------------
    # Async execution
    # ------------------------------------------------------------------

    async def run_async(
        self,
        cmd: list[str] | str,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
        use_process_group: bool | None = None,
        shell: bool = False,
        cwd: Path | None = None,
        on_line: LineCallback | None = None,
    ) -> CommandResult:
        """Run a command asynchronously, streaming output as it arrives.

        Args:
            cmd: Command to run. Can be a list of strings or a shell string.
            env: Environment variables to set (merged with os.environ).
            timeout: Overrides the runner's default timeout.
            use_process_group: Kill the whole process group on timeout
                (default True on POSIX).
            shell: If True, run command through shell.
            cwd: Override working directory for this command.
            on_line: Called with ("stdout"|"stderr", line) per output line.

        Returns:
            CommandResult with execution details.

        Raises:
            OSError: If the process could not be created.
            asyncio.CancelledError: Propagated after the child is killed.
        """
        effective_timeout = timeout if timeout is not None else self.timeout_seconds
        use_pg = self._resolve_process_group(use_process_group)
        normalized = self._normalize_cmd(cmd, shell)
        start = time.monotonic()
        common = {
            "cwd": str(cwd or self.cwd),
            "env": self._build_env(env),
            "stdin": asyncio.subprocess.DEVNULL,
            "stdout": asyncio.subprocess.PIPE,
            "stderr": asyncio.subprocess.PIPE,
            "start_new_session": use_pg,
            "limit": _STREAM_LIMIT,
        }
        if shell:
            assert isinstance(normalized, str)
            proc = await asyncio.create_subprocess_shell(normalized, **common)
        else:
            proc = await asyncio.create_subprocess_exec(*normalized, **common)
        if use_pg:
            self.register_sigint_pgid(proc.pid)

        stdout_chunks: list[str] = []
        stderr_chunks: list[str] = []
        readers = [
            asyncio.create_task(
                _pump(proc.stdout, "stdout", stdout_chunks, on_line)
            ),
            asyncio.create_task(
                _pump(proc.stderr, "stderr", stderr_chunks, on_line)
            ),
        ]
        timed_out = False
        try:
            try:
                await asyncio.wait_for(proc.wait(), timeout=effective_timeout)
            except TimeoutError:
                timed_out = True
                logger.debug("Command timed out after %ss: %s", effective_timeout, cmd)
                await self._terminate_async(proc, use_pg)
            # Orphaned children may keep the pipes open; stop waiting on them
            _, pending = await asyncio.wait(readers, timeout=self.kill_grace_seconds)
            for reader in pending:
                reader.cancel()
        except asyncio.CancelledError:
            self._send_signal(proc.pid, signal.SIGKILL, use_pg)
            for reader in readers:
                reader.cancel()
            raise
        finally:
            if use_pg:
                self.unregister_sigint_pgid(proc.pid)

        returncode = proc.returncode if proc.returncode is not None else -1
        return CommandResult(
            command=cmd,
            returncode=TIMEOUT_EXIT_CODE if timed_out else returncode,
            stdout="".join(stdout_chunks),
            stderr="".join(stderr_chunks),
            duration_seconds=time.monotonic() - start,
            timed_out=timed_out,
        )

    async def _terminate_async(
        self, proc: asyncio.subprocess.Process, use_pg: bool
    ) -> None:
        self._send_signal(proc.pid, signal.SIGTERM, use_pg)
        try:
            await asyncio.wait_for(proc.wait(), timeout=self.kill_grace_seconds)
            return
        except TimeoutError:
            pass
        self._send_signal(proc.pid, signal.SIGKILL, use_pg)
        await proc.wait()


async def _pump(
    stream: asyncio.StreamReader | None,
    name: str,
    sink: list[str],
    on_line: LineCallback | None,
) -> None:
    if stream is None:
        return
    while True:
        try:
            raw = await stream.readuntil(b"\n")
        except asyncio.IncompleteReadError as e:
            raw = e.partial
        except asyncio.LimitOverrunError:
            # Oversized lines are passed on in limit-sized pieces
            raw = await stream.read(_STREAM_LIMIT)
            logger.debug("%s line longer than %d bytes, split", name, _STREAM_LIMIT)
        if not raw:
            return
        text = raw.decode("utf-8", errors="replace")
        sink.append(text)
        if on_line is not None:
            on_line(name, text.rstrip("\r\n"))


async def run_command_async(
    cmd: list[str] | str,
    cwd: Path,
    timeout_seconds: float | None = None,
    env: Mapping[str, str] | None = None,
    shell: bool = False,
) -> CommandResult:
    """Run a command asynchronously with a throwaway CommandRunner."""
    runner = CommandRunner(cwd=cwd, timeout_seconds=timeout_seconds)
    return await runner.run_async(cmd, env=env, shell=shell)
