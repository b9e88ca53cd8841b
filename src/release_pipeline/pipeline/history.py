"""Append-only history of terminal pipeline runs (JSON lines)."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pathlib import Path

    from release_pipeline.pipeline.models import PipelineRun

HISTORY_FILE = "runs.jsonl"


class RunHistory:
    def __init__(self, state_dir: Path) -> None:
        self.path = state_dir / HISTORY_FILE

    def append(self, run: PipelineRun) -> None:
        record = run.report().to_dict()
        record["trigger"] = {
            "branch": run.trigger.branch,
            "head_commit": run.trigger.head_commit,
            "override": run.trigger.override.value if run.trigger.override else None,
        }
        record["started_at"] = run.started_at.isoformat()
        record["finished_at"] = run.finished_at.isoformat() if run.finished_at else None
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(record, sort_keys=True) + "\n")

    def entries(self) -> list[dict[str, Any]]:
        """All recorded runs, oldest first. Unreadable lines are skipped."""
        if not self.path.is_file():
            return []
        entries = []
        for line in self.path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            try:
                entries.append(json.loads(line))
            except json.JSONDecodeError:
                continue
        return entries
