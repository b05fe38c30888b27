"""Report persistence: atomic writes, run counters and the run lock.

Reports are regenerated wholesale on every run, so every file is written to
a temporary sibling and renamed into place. Any OSError while persisting is
wrapped in ReportWriteError, which the CLI treats as fatal.

The run lock is a ``.lock`` directory inside the report directory. It is
built under a temporary name with the owner's pid inside, then renamed into
place, so two runs cannot both hold it and a lock left behind by a crashed
run can be reclaimed.
"""

from __future__ import annotations

import errno
import json
import logging
import os
import shutil
import tempfile
import time
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from types import TracebackType
    from typing import Self

logger = logging.getLogger(__name__)

# Type alias for dependency injection in tests
ProcessChecker = Callable[[int], bool]

LOCK_DIR_NAME = ".lock"
LOCK_PID_FILE = "pid"
# A lock without a pid file is only treated as abandoned after this long
ORPHAN_LOCK_GRACE_SECONDS = 60.0
COUNTS_DIR_NAME = ".counts"


class ReportWriteError(Exception):
    """Raised when a report or summary cannot be persisted."""

    def __init__(self, path: Path, cause: OSError) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to write report {path}: {cause}")


class RunLockError(Exception):
    """Raised when another live run holds the report directory lock."""

    def __init__(self, lock_path: Path, holder_pid: int | None) -> None:
        self.lock_path = lock_path
        self.holder_pid = holder_pid
        holder = f"pid {holder_pid}" if holder_pid is not None else "unknown pid"
        super().__init__(
            f"Another brain-monitor run ({holder}) is writing to "
            f"{lock_path.parent}. Remove {lock_path} if it is stale."
        )


def write_text_atomic(path: Path, content: str) -> Path:
    """Write content to path via temp file + rename.

    Raises:
        ReportWriteError: On any filesystem error.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
    except OSError as e:
        raise ReportWriteError(path, e) from e
    logger.debug("Wrote %s (%d bytes)", path, len(content))
    return path


def write_json_atomic(path: Path, data: dict[str, Any]) -> Path:
    """Serialize data as indented JSON and write it atomically."""
    return write_text_atomic(path, json.dumps(data, indent=2, sort_keys=False) + "\n")


def next_run_number(report_dir: Path, key: str) -> int:
    """Increment and return the run counter for key.

    Counters live in ``<report_dir>/.counts/.<key>-run-count``. An unreadable
    counter restarts at 1.
    """
    counter = report_dir / COUNTS_DIR_NAME / f".{key}-run-count"
    current = 0
    try:
        current = int(counter.read_text(encoding="utf-8").strip())
    except FileNotFoundError:
        pass
    except (OSError, ValueError) as e:
        logger.warning("Resetting unreadable run counter %s: %s", counter, e)
    number = current + 1
    write_text_atomic(counter, str(number))
    return number


def _is_process_running(pid: int) -> bool:
    try:
        os.kill(pid, 0)
        return True
    except PermissionError:
        # Exists but owned by another user
        return True
    except (OSError, ProcessLookupError):
        return False


class RunLock:
    """Run-scoped exclusive lock on a report directory.

    The lock directory is assembled under a temporary name with the pid file
    already inside, then renamed to ``.lock``. Other runs therefore never see
    a lock without an owner. A pid-less ``.lock`` (left by something else)
    is only reclaimed once it is older than ``orphan_grace_seconds``.

    Usage:
        with RunLock(report_dir):
            ...write reports...
    """

    def __init__(
        self,
        report_dir: Path,
        *,
        pid: int | None = None,
        process_checker: ProcessChecker = _is_process_running,
        orphan_grace_seconds: float = ORPHAN_LOCK_GRACE_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.report_dir = report_dir
        self.lock_path = report_dir / LOCK_DIR_NAME
        self._pid = pid if pid is not None else os.getpid()
        self._process_checker = process_checker
        self._orphan_grace_seconds = orphan_grace_seconds
        self._clock = clock
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def _read_holder(self, lock_dir: Path | None = None) -> int | None:
        lock_dir = lock_dir or self.lock_path
        try:
            return int((lock_dir / LOCK_PID_FILE).read_text(encoding="utf-8").strip())
        except (OSError, ValueError):
            return None

    def _is_stale(self, holder: int | None) -> bool:
        if holder is not None:
            return not self._process_checker(holder)
        try:
            age = self._clock() - self.lock_path.stat().st_mtime
        except FileNotFoundError:
            return True
        except OSError:
            return False
        return age >= self._orphan_grace_seconds

    def _prepare(self) -> Path:
        staging = Path(
            tempfile.mkdtemp(prefix=f"{LOCK_DIR_NAME}-", dir=self.report_dir)
        )
        try:
            (staging / LOCK_PID_FILE).write_text(str(self._pid), encoding="utf-8")
        except OSError:
            shutil.rmtree(staging, ignore_errors=True)
            raise
        return staging

    def _publish(self, staging: Path) -> bool:
        """Rename staging to the lock path; False if a lock already exists."""
        # rename(2) would silently replace an empty directory
        if self.lock_path.exists():
            return False
        try:
            os.rename(staging, self.lock_path)
        except OSError as e:
            if e.errno in (errno.EEXIST, errno.ENOTEMPTY) or isinstance(
                e, (FileExistsError, IsADirectoryError)
            ):
                return False
            raise
        return True

    def _reclaim(self, holder: int | None) -> bool:
        """Move a stale lock aside; False if it changed hands meanwhile."""
        graveyard = self.report_dir / f"{LOCK_DIR_NAME}-stale-{self._pid}"
        shutil.rmtree(graveyard, ignore_errors=True)
        try:
            os.rename(self.lock_path, graveyard)
        except FileNotFoundError:
            return True
        if self._read_holder(graveyard) != holder:
            # Another run replaced the stale lock before we moved it
            try:
                os.rename(graveyard, self.lock_path)
            except OSError as e:
                logger.warning("Could not restore run lock %s: %s", self.lock_path, e)
            return False
        logger.warning(
            "Reclaiming stale run lock %s (holder pid %s)", self.lock_path, holder
        )
        shutil.rmtree(graveyard, ignore_errors=True)
        return True

    def acquire(self) -> None:
        """Take the lock, reclaiming it once if its owner is gone.

        Raises:
            RunLockError: If another run holds the lock.
            ReportWriteError: If the report directory cannot be written.
        """
        try:
            self.report_dir.mkdir(parents=True, exist_ok=True)
            staging = self._prepare()
        except OSError as e:
            raise ReportWriteError(self.report_dir, e) from e

        try:
            for attempt in range(2):
                try:
                    published = self._publish(staging)
                except OSError as e:
                    raise ReportWriteError(self.lock_path, e) from e
                if published:
                    self._held = True
                    logger.debug("Acquired run lock %s", self.lock_path)
                    return
                holder = self._read_holder()
                if attempt == 0 and self._is_stale(holder) and self._reclaim(holder):
                    continue
                raise RunLockError(self.lock_path, holder)
        finally:
            if not self._held:
                shutil.rmtree(staging, ignore_errors=True)

    def release(self) -> None:
        """Remove the lock directory if this instance holds it (idempotent)."""
        if not self._held:
            return
        shutil.rmtree(self.lock_path, ignore_errors=True)
        self._held = False
        logger.debug("Released run lock %s", self.lock_path)

    def __enter__(self) -> Self:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()
