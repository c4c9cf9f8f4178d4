"""Working-directory lock so two calculations never share a directory."""

from __future__ import annotations

import contextlib
import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator

logger = logging.getLogger(__name__)

LOCK_FILE = "run.lock"


def acquire_run_lock(working_dir: str | os.PathLike[str]) -> Path:
    """Create ``run.lock`` in ``working_dir`` and return its path.

    A lock left behind by a process that no longer exists is replaced.

    Raises:
        RuntimeError: If another live process holds the lock.
    """
    lock_path = Path(working_dir) / LOCK_FILE
    payload = {"pid": os.getpid(), "started_at": _now_utc_iso()}
    flags = os.O_CREAT | os.O_EXCL | os.O_WRONLY | getattr(os, "O_NOFOLLOW", 0)
    while True:
        try:
            fd = os.open(str(lock_path), flags, 0o600)
        except FileExistsError:
            _remove_stale_lock(lock_path)
            continue
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(json.dumps(payload, ensure_ascii=True) + "\n")
            handle.flush()
            os.fsync(handle.fileno())
        logger.debug("Acquired %s", lock_path)
        return lock_path


def release_run_lock(lock_path: str | os.PathLike[str]) -> None:
    try:
        Path(lock_path).unlink()
    except FileNotFoundError:
        return
    except OSError as exc:
        logger.warning("Could not remove lock file %s: %s", lock_path, exc)


@contextlib.contextmanager
def run_lock(working_dir: str | os.PathLike[str]) -> Generator[Path, None, None]:
    """Hold the working-directory lock for the duration of the block."""
    lock_path = acquire_run_lock(working_dir)
    try:
        yield lock_path
    finally:
        release_run_lock(lock_path)


def read_lock_owner(working_dir: str | os.PathLike[str]) -> int | None:
    """PID recorded in the directory's lock file, if any."""
    return _parse_lock_pid(Path(working_dir) / LOCK_FILE)


def _remove_stale_lock(lock_path: Path) -> None:
    if lock_path.is_symlink():
        try:
            lock_path.unlink()
        except OSError as exc:
            raise RuntimeError(
                f"Lock path is a symlink and could not be removed: {lock_path}. error={exc}"
            ) from exc
        return

    pid = _parse_lock_pid(lock_path)
    if pid is None:
        raise RuntimeError(
            f"Lock file exists but owner PID is unreadable. Remove manually: {lock_path}"
        )
    if _is_process_alive(pid):
        raise RuntimeError(
            f"Another calculation is active in this directory (pid={pid}). Lock file: {lock_path}"
        )
    logger.info("Removing stale lock of pid %d: %s", pid, lock_path)
    try:
        lock_path.unlink()
    except FileNotFoundError:
        return
    except OSError as exc:
        raise RuntimeError(
            f"Detected stale lock but failed to remove it (pid={pid}). "
            f"Lock file: {lock_path}. error={exc}"
        ) from exc


def _parse_lock_pid(lock_path: Path) -> int | None:
    try:
        raw = lock_path.read_text(encoding="utf-8").strip()
    except OSError:
        return None
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        parsed = raw.splitlines()[0]
    if isinstance(parsed, dict):
        parsed = parsed.get("pid")
    return _try_int(parsed)


def _try_int(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str):
        try:
            parsed = int(value.strip())
        except ValueError:
            return None
        return parsed if parsed > 0 else None
    return None


def _is_process_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError:
        return False
    return True


def _now_utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
