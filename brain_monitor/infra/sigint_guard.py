"""Shared interrupt handling helpers.

Key components:
- await_interruptible(): Interruptible sleep function
- run_until_interrupted(): Await a coroutine unless the interrupt fires first
- install_interrupt_handlers(): Route SIGINT/SIGTERM to an asyncio.Event
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from collections.abc import Coroutine  # noqa: TC003 - runtime for TypeVar
from typing import TypeVar

from brain_monitor.infra.tools.command_runner import CommandRunner

__all__ = [
    "await_interruptible",
    "install_interrupt_handlers",
    "remove_interrupt_handlers",
    "run_until_interrupted",
]

logger = logging.getLogger(__name__)

_HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


async def await_interruptible(
    delay: float, interrupt_event: asyncio.Event | None
) -> bool:
    """Wait for delay seconds, but return early if interrupted.

    Args:
        delay: Number of seconds to wait.
        interrupt_event: Event to monitor for interruption. If None,
                        waits the full duration.

    Returns:
        True if interrupted before delay elapsed, False if waited full duration.
    """
    if interrupt_event is None:
        await asyncio.sleep(delay)
        return False

    if interrupt_event.is_set():
        return True

    try:
        await asyncio.wait_for(interrupt_event.wait(), timeout=delay)
        return True
    except TimeoutError:
        return False


T = TypeVar("T")


async def run_until_interrupted(
    coro: Coroutine[object, object, T],
    interrupt_event: asyncio.Event | None,
) -> tuple[T | None, bool]:
    """Run a coroutine, cancelling it if the interrupt event fires first.

    Args:
        coro: The coroutine to run.
        interrupt_event: Event to monitor. If None, the coroutine is awaited
                        directly.

    Returns:
        (result, interrupted). result is None when interrupted.
    """
    if interrupt_event is None:
        return (await coro, False)

    task = asyncio.create_task(coro)
    interrupt_task = asyncio.create_task(interrupt_event.wait())
    try:
        done, _ = await asyncio.wait(
            {task, interrupt_task}, return_when=asyncio.FIRST_COMPLETED
        )
        if task in done:
            interrupt_task.cancel()
            try:
                await interrupt_task
            except asyncio.CancelledError:
                pass
            return (task.result(), False)

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        return (None, True)
    except BaseException:
        task.cancel()
        interrupt_task.cancel()
        raise


def install_interrupt_handlers(
    loop: asyncio.AbstractEventLoop, interrupt_event: asyncio.Event
) -> bool:
    """Set interrupt_event and kill child process groups on SIGINT/SIGTERM.

    A second signal while the first is being handled kills every tracked
    process group immediately.

    Returns:
        True if handlers were installed (False on Windows).
    """
    if sys.platform == "win32":
        return False

    def _handle(signum: int) -> None:
        if interrupt_event.is_set():
            CommandRunner.kill_active_process_groups()
            return
        logger.info("Received %s, stopping", signal.Signals(signum).name)
        interrupt_event.set()

    for sig in _HANDLED_SIGNALS:
        loop.add_signal_handler(sig, _handle, sig)
    return True


def remove_interrupt_handlers(loop: asyncio.AbstractEventLoop) -> None:
    if sys.platform == "win32":
        return
    for sig in _HANDLED_SIGNALS:
        loop.remove_signal_handler(sig)
