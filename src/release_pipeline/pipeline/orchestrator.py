"""Pipeline Orchestrator.

Drives one release run through its states::

    idle -> verifying -> classifying -> tagging -> building
         -> publishing -> notifying -> terminal(success | failed | noop)

Verifying, tagging and building fail fast. Publishing collects every
target's result before moving on. Notification is best-effort. A created
tag is never removed after the tagging stage, even if the build fails, so
a version number is never reused.
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from release_pipeline.core.commits import classify
from release_pipeline.core.notes import render_release_notes
from release_pipeline.exceptions import (
    BuildError,
    PipelineAbortedError,
    PreconditionError,
    ReleasePipelineError,
)
from release_pipeline.logging import bind, clear_bindings
from release_pipeline.pipeline.build import BuildStage
from release_pipeline.pipeline.history import RunHistory
from release_pipeline.pipeline.lock import RunLock
from release_pipeline.pipeline.models import PipelineRun, RunState, RunStatus
from release_pipeline.pipeline.tagging import TagWriter
from release_pipeline.project.store import VersionStore
from release_pipeline.publish.fanout import build_targets, publish_all
from release_pipeline.vcs.git import GitRepository

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence
    from pathlib import Path

    from release_pipeline.config.models import ReleasePipelineConfig
    from release_pipeline.core.commits import BumpDecision
    from release_pipeline.core.version import Version
    from release_pipeline.pipeline.models import Trigger
    from release_pipeline.pipeline.notify import Notifier
    from release_pipeline.publish.base import PublishTarget
    from release_pipeline.vcs.git import Commit

log = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ReleasePlan:
    """What a run would do, computed without side effects."""

    current_version: Version
    decision: BumpDecision
    next_version: Version | None
    latest_tag: str | None
    commits: tuple[Commit, ...]


class ReleasePipeline:
    """Runs releases for one repository."""

    def __init__(
        self,
        root: Path,
        config: ReleasePipelineConfig,
        *,
        repo: GitRepository | None = None,
        store: VersionStore | None = None,
        build_stage: BuildStage | None = None,
        targets: Sequence[PublishTarget] | None = None,
        notifiers: Sequence[Notifier] = (),
        history: RunHistory | None = None,
    ) -> None:
        self.root = root
        self.config = config
        self.repo = repo or GitRepository(root, remote=config.git.remote)
        self.store = store or VersionStore(root, config)
        self.build_stage = build_stage or BuildStage(root, config.build)
        self.targets = list(targets) if targets is not None else build_targets(config)
        self.notifiers = list(notifiers)
        self.history = history or RunHistory(root / config.state_dir)
        self.tag_writer = TagWriter(self.repo, self.store, config)
        self._abort = threading.Event()

    def abort(self) -> None:
        """Stop the run at the next safe point.

        Before tagging the run ends as failed with nothing changed. Once a
        tag exists the build is still attempted; during publishing no new
        attempts are started.
        """
        log.warning("pipeline.abort_requested")
        self._abort.set()

    # Planning -------------------------------------------------------------------

    def plan(self, trigger: Trigger) -> ReleasePlan:
        """Classify the commits since the last release without changing anything."""
        current = self.store.current_version()
        prefix = self.config.effective_tag_prefix
        latest_tag = self.repo.get_latest_tag(f"{prefix}*")

        head = self.repo.head_sha()
        released_head = self.store.last_released_commit() == head or any(
            t.startswith(prefix) for t in self.repo.tags_pointing_at("HEAD")
        )
        commits: list[Commit] = [] if released_head else self.repo.get_commits_since_tag(latest_tag)

        decision = classify(commits, self.config.commits, trigger.override)
        if decision.manual and self.config.version.override_floor:
            automatic = classify(commits, self.config.commits)
            if decision.kind.rank < automatic.kind.rank:
                raise PreconditionError(
                    f"Manual bump {decision.kind} is lower than {automatic.kind} "
                    "required by the commit history"
                )

        next_version = current.bump(decision.kind) if decision.releasable else None
        return ReleasePlan(
            current_version=current,
            decision=decision,
            next_version=next_version,
            latest_tag=latest_tag,
            commits=tuple(commits),
        )

    # Execution ------------------------------------------------------------------

    def run(self, trigger: Trigger) -> PipelineRun:
        """Execute a full run for ``trigger``.

        Raises:
            PipelineBusyError: Another run holds the lock for this branch
        """
        run = PipelineRun(trigger=trigger)
        bind(run_id=run.run_id, branch=trigger.branch)
        try:
            with RunLock(self.root / self.config.state_dir, trigger.branch, run.run_id):
                log.info("pipeline.start", head=trigger.head_commit[:7])
                status = self._execute(run)
                self._conclude(run, status)
        finally:
            clear_bindings()
        return run

    @contextmanager
    def _stage(self, run: PipelineRun, state: RunState) -> Iterator[None]:
        run.state = state
        log.info("pipeline.stage", stage=state.value)
        started = time.monotonic()
        try:
            yield
        finally:
            run.record_timing(state, time.monotonic() - started)

    def _check_abort(self) -> None:
        if self._abort.is_set():
            raise PipelineAbortedError("Run aborted before any change was made")

    def _halt(self, run: PipelineRun, error: Exception) -> RunStatus:
        run.halted_stage = run.state
        if isinstance(error, ReleasePipelineError):
            run.error = str(error)
        else:
            run.error = f"unexpected error: {error!r}"
        diagnostic = getattr(error, "diagnostic", None)
        if diagnostic:
            run.error = f"{run.error}\n{diagnostic}"
        log.error("pipeline.halted", stage=run.state.value, error=run.error)
        return RunStatus.FAILED

    def _execute(self, run: PipelineRun) -> RunStatus:
        trigger = run.trigger

        try:
            with self._stage(run, RunState.VERIFYING):
                run.previous_version = self.store.current_version()
                if trigger.branch != self.config.trunk_branch:
                    raise PreconditionError(
                        f"Trigger is for {trigger.branch!r}, releases run on "
                        f"{self.config.trunk_branch!r}"
                    )
                head = self.repo.head_sha()
                if trigger.head_commit and not head.startswith(trigger.head_commit):
                    raise PreconditionError(
                        f"Trigger commit {trigger.head_commit[:7]} is not checked out "
                        f"(HEAD is {head[:7]})"
                    )
                self.tag_writer.check_preconditions()
                result = self.build_stage.verify()
                if not result.passed:
                    raise BuildError("Test suite failed", diagnostic=result.summary)
                self._check_abort()

            with self._stage(run, RunState.CLASSIFYING):
                plan = self.plan(trigger)
                run.decision = plan.decision
                if plan.next_version is None:
                    log.info("pipeline.noop", commits=len(plan.commits))
                    return RunStatus.NOOP
                self._check_abort()

            with self._stage(run, RunState.TAGGING):
                notes = render_release_notes(
                    plan.next_version, plan.commits, self.config.commits
                )
                run.tag = self.tag_writer.apply(plan.next_version, notes)
                self.store.record_release(run.tag)

            with self._stage(run, RunState.BUILDING):
                result = self.build_stage.verify()
                if not result.passed:
                    raise BuildError(
                        f"Test suite failed on tagged commit {run.tag.name}",
                        diagnostic=result.summary,
                    )
                run.artifacts = self.build_stage.build(plan.next_version)
        except ReleasePipelineError as e:
            return self._halt(run, e)
        except Exception as e:
            log.exception("pipeline.crashed", stage=run.state.value)
            return self._halt(run, e)

        with self._stage(run, RunState.PUBLISHING):
            run.results = publish_all(self.targets, run.tag, run.artifacts, self._abort)

        blocking = [r.target for r in run.results if r.blocks_release]
        if blocking:
            run.error = f"Mandatory target(s) failed: {', '.join(blocking)}"
            run.halted_stage = RunState.PUBLISHING
            return RunStatus.FAILED
        return RunStatus.SUCCESS

    def _conclude(self, run: PipelineRun, status: RunStatus) -> None:
        run.status = status
        with self._stage(run, RunState.NOTIFYING):
            report = run.report()
            for notifier in self.notifiers:
                try:
                    notifier.notify(report)
                except Exception as e:
                    log.warning(
                        "pipeline.notify_failed", notifier=type(notifier).__name__, error=repr(e)
                    )
        run.finish(status)
        self.history.append(run)
        log.info("pipeline.finished", status=status.value, halted=run.halted_stage)
