"""Build Stage: the test gate and artifact production.

The test suite and the build toolchain are external commands. This module
only runs them, enforces timeouts and turns their output into
:class:`BuildArtifact` records.
"""

from __future__ import annotations

import json
import shlex
import subprocess
import tempfile
import time
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import structlog
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt

from release_pipeline.config.models import ArtifactKind
from release_pipeline.exceptions import BuildError
from release_pipeline.pipeline.models import BuildArtifact, TestResult

if TYPE_CHECKING:
    from collections.abc import Sequence

    from release_pipeline.config.models import BuildConfig
    from release_pipeline.core.version import Version

log = structlog.get_logger(__name__)

ARTIFACT_SUFFIXES: dict[ArtifactKind, tuple[str, ...]] = {
    ArtifactKind.WHEEL: (".whl",),
    ArtifactKind.SDIST: (".tar.gz", ".zip"),
}

_DIAGNOSTIC_LIMIT = 4000


class TestSuite(Protocol):
    def run(self, workdir: Path) -> TestResult: ...


class Toolchain(Protocol):
    def build(self, version: Version, kinds: Sequence[ArtifactKind], out_dir: Path) -> list[Path]:
        """Build distributions into ``out_dir`` and return the produced files.

        Raises:
            BuildError: With the toolchain diagnostic on failure
        """
        ...


def _tail(text: str | bytes | None) -> str:
    if text is None:
        return ""
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")
    return text[-_DIAGNOSTIC_LIMIT:].strip()


class CommandTestSuite:
    """Runs a shell command; exit code 0 means the suite passed.

    A run that times out is retried, up to ``attempts`` runs in total.
    """

    __test__ = False

    def __init__(self, command: str, timeout: float, attempts: int = 2) -> None:
        self.command = command
        self.timeout = timeout
        self.attempts = attempts

    def _invoke(self, workdir: Path) -> subprocess.CompletedProcess[str]:
        return subprocess.run(
            shlex.split(self.command),
            cwd=workdir,
            capture_output=True,
            text=True,
            timeout=self.timeout,
            check=False,
        )

    def run(self, workdir: Path) -> TestResult:
        started = time.monotonic()
        retrying = Retrying(
            stop=stop_after_attempt(self.attempts),
            retry=retry_if_exception_type(subprocess.TimeoutExpired),
            reraise=True,
            before_sleep=lambda state: log.warning(
                "build.test_timeout", attempt=state.attempt_number, timeout=self.timeout
            ),
        )
        try:
            result = retrying(self._invoke, workdir)
        except subprocess.TimeoutExpired as e:
            return TestResult(
                passed=False,
                summary=(
                    f"test command timed out after {self.timeout:g}s "
                    f"({self.attempts} attempt(s))\n{_tail(e.stdout)}"
                ),
                duration=time.monotonic() - started,
            )
        except FileNotFoundError:
            return TestResult(
                passed=False,
                summary=f"test command not found: {self.command}",
                duration=time.monotonic() - started,
            )

        output = _tail(result.stdout + result.stderr)
        lines = output.splitlines()
        return TestResult(
            passed=result.returncode == 0,
            summary=lines[-1] if result.returncode == 0 and lines else output,
            duration=time.monotonic() - started,
        )


class CommandToolchain:
    """Runs a build command with ``{out_dir}`` and ``{version}`` substituted."""

    def __init__(self, command: str, workdir: Path, timeout: float) -> None:
        self.command = command
        self.workdir = workdir
        self.timeout = timeout

    def build(self, version: Version, kinds: Sequence[ArtifactKind], out_dir: Path) -> list[Path]:
        cmd = self.command.format(out_dir=shlex.quote(str(out_dir)), version=version)
        try:
            result = subprocess.run(
                shlex.split(cmd),
                cwd=self.workdir,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise BuildError(
                f"Build timed out after {self.timeout:g}s", diagnostic=_tail(e.stderr)
            ) from e
        except FileNotFoundError as e:
            raise BuildError(f"Build command not found: {cmd}") from e

        if result.returncode != 0:
            raise BuildError(
                f"Build failed with exit code {result.returncode}",
                diagnostic=_tail(result.stderr or result.stdout),
            )
        return sorted(p for p in out_dir.iterdir() if p.is_file())


class BuildStage:
    def __init__(
        self,
        root: Path,
        config: BuildConfig,
        test_suite: TestSuite | None = None,
        toolchain: Toolchain | None = None,
    ) -> None:
        self.root = root
        self.config = config
        self.test_suite = test_suite or CommandTestSuite(
            config.test_command, config.test_timeout, config.test_attempts
        )
        self.toolchain = toolchain or CommandToolchain(
            config.build_command, root, config.build_timeout
        )

    def verify(self) -> TestResult:
        """Run the test suite against the current working tree."""
        result = self.test_suite.run(self.root)
        log.info("build.verify", passed=result.passed, duration=round(result.duration, 2))
        return result

    def build(self, version: Version) -> tuple[BuildArtifact, ...]:
        """Produce one artifact per configured kind.

        Raises:
            BuildError: If the toolchain fails or any kind is missing
        """
        kinds = list(self.config.artifact_kinds)
        with tempfile.TemporaryDirectory(prefix="release-pipeline-") as tmp:
            out_dir = Path(tmp)
            produced = self.toolchain.build(version, kinds, out_dir)
            artifacts = collect_artifacts(produced, kinds)

        missing = [k.value for k in kinds if not any(a.kind == k for a in artifacts)]
        if missing:
            names = ", ".join(p.name for p in produced) or "nothing"
            raise BuildError(
                f"Build did not produce: {', '.join(missing)}",
                diagnostic=f"toolchain produced {names}",
            )

        self._export(artifacts)
        log.info("build.done", version=str(version), artifacts=[a.filename for a in artifacts])
        return artifacts

    def _export(self, artifacts: Sequence[BuildArtifact]) -> None:
        out_dir = self.root / self.config.out_dir
        out_dir.mkdir(parents=True, exist_ok=True)
        for artifact in artifacts:
            (out_dir / artifact.filename).write_bytes(artifact.content)
        write_manifest(artifacts, out_dir / self.config.manifest_name)


def classify_artifact(path: Path) -> ArtifactKind | None:
    name = path.name
    for kind, suffixes in ARTIFACT_SUFFIXES.items():
        if name.endswith(suffixes):
            return kind
    return None


def collect_artifacts(paths: Sequence[Path], kinds: Sequence[ArtifactKind]) -> tuple[BuildArtifact, ...]:
    """Read the files of the requested kinds into memory."""
    artifacts = []
    for path in paths:
        kind = classify_artifact(path)
        if kind is None or kind not in kinds:
            continue
        artifacts.append(BuildArtifact.from_bytes(kind, path.name, path.read_bytes()))
    return tuple(artifacts)


def write_manifest(artifacts: Sequence[BuildArtifact], path: Path) -> Path:
    manifest = {
        "artifacts": [
            {"filename": a.filename, "kind": a.kind.value, "size": a.size, "sha256": a.checksum}
            for a in artifacts
        ]
    }
    path.write_text(json.dumps(manifest, indent=2) + "\n", encoding="utf-8")
    return path
