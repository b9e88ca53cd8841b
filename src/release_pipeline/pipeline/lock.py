"""Exclusive per-branch run lock.

Only one run may touch the version files and the trunk branch at a time.
The lock is a file created with O_EXCL; a second trigger fails fast with
PipelineBusyError rather than waiting.
"""

from __future__ import annotations

import json
import os
from typing import TYPE_CHECKING

import structlog

from release_pipeline.exceptions import PipelineBusyError

if TYPE_CHECKING:
    from pathlib import Path
    from types import TracebackType

log = structlog.get_logger(__name__)


def _pid_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


class RunLock:
    """Context manager holding ``<state_dir>/<branch>.lock``."""

    def __init__(self, state_dir: Path, branch: str, run_id: str) -> None:
        safe_branch = branch.replace("/", "__")
        self.path = state_dir / f"{safe_branch}.lock"
        self.branch = branch
        self.run_id = run_id
        self._held = False

    def acquire(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps({"pid": os.getpid(), "run_id": self.run_id})
        for _ in range(2):
            try:
                fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                if self._reclaim_stale():
                    continue
                holder = self._holder()
                raise PipelineBusyError(
                    f"A release run is already in progress on {self.branch!r}"
                    + (f" (run {holder})" if holder else "")
                ) from None
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
            self._held = True
            log.debug("lock.acquired", branch=self.branch, path=str(self.path))
            return
        raise PipelineBusyError(f"Could not acquire lock {self.path}")

    def release(self) -> None:
        if not self._held:
            return
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        self._held = False
        log.debug("lock.released", branch=self.branch)

    def _read(self) -> dict[str, object]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return {}
        return data if isinstance(data, dict) else {}

    def _holder(self) -> str | None:
        run_id = self._read().get("run_id")
        return str(run_id) if run_id else None

    def _reclaim_stale(self) -> bool:
        pid = self._read().get("pid")
        if isinstance(pid, int) and not _pid_alive(pid):
            log.warning("lock.stale_reclaimed", branch=self.branch, pid=pid)
            try:
                self.path.unlink()
            except FileNotFoundError:
                pass
            return True
        return False

    def __enter__(self) -> RunLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()
