"""Tests for the Build Stage."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from release_pipeline.config.models import ArtifactKind, BuildConfig
from release_pipeline.core.version import Version
from release_pipeline.exceptions import BuildError
from release_pipeline.pipeline.build import (
    BuildStage,
    CommandTestSuite,
    CommandToolchain,
    classify_artifact,
)
from release_pipeline.pipeline.models import TestResult

if TYPE_CHECKING:
    from collections.abc import Sequence


class FakeToolchain:
    def __init__(self, files: dict[str, bytes]) -> None:
        self.files = files
        self.calls: list[Version] = []

    def build(self, version: Version, kinds: Sequence[ArtifactKind], out_dir: Path) -> list[Path]:
        self.calls.append(version)
        paths = []
        for name, content in self.files.items():
            path = out_dir / name.format(version=version)
            path.write_bytes(content)
            paths.append(path)
        return paths


class FakeSuite:
    def __init__(self, passed: bool = True) -> None:
        self.passed = passed

    def run(self, workdir: Path) -> TestResult:
        return TestResult(passed=self.passed, summary="3 passed" if self.passed else "1 failed")


WHEEL_AND_SDIST = {
    "demo-{version}-py3-none-any.whl": b"wheel-bytes",
    "demo-{version}.tar.gz": b"sdist-bytes",
}


class TestBuild:
    def test_build_produces_both_kinds(self, tmp_path: Path):
        stage = BuildStage(tmp_path, BuildConfig(), FakeSuite(), FakeToolchain(WHEEL_AND_SDIST))

        artifacts = stage.build(Version(1, 3, 0))

        assert [a.kind for a in artifacts] == [ArtifactKind.WHEEL, ArtifactKind.SDIST]
        assert artifacts[0].filename == "demo-1.3.0-py3-none-any.whl"
        assert artifacts[0].content == b"wheel-bytes"
        assert len(artifacts[0].checksum) == 64

    def test_build_writes_artifacts_and_manifest(self, tmp_path: Path):
        stage = BuildStage(tmp_path, BuildConfig(), FakeSuite(), FakeToolchain(WHEEL_AND_SDIST))

        artifacts = stage.build(Version(1, 3, 0))

        manifest = json.loads((tmp_path / "dist" / "manifest.json").read_text())
        assert [entry["sha256"] for entry in manifest["artifacts"]] == [a.checksum for a in artifacts]
        assert (tmp_path / "dist" / "demo-1.3.0.tar.gz").read_bytes() == b"sdist-bytes"

    def test_missing_kind_is_fatal(self, tmp_path: Path):
        toolchain = FakeToolchain({"demo-{version}-py3-none-any.whl": b"w"})
        stage = BuildStage(tmp_path, BuildConfig(), FakeSuite(), toolchain)

        with pytest.raises(BuildError, match="sdist") as exc_info:
            stage.build(Version(1, 3, 0))

        assert "demo-1.3.0-py3-none-any.whl" in (exc_info.value.diagnostic or "")
        assert not (tmp_path / "dist").exists()

    def test_only_requested_kinds_are_kept(self, tmp_path: Path):
        config = BuildConfig(artifact_kinds=[ArtifactKind.SDIST])
        stage = BuildStage(tmp_path, config, FakeSuite(), FakeToolchain(WHEEL_AND_SDIST))

        artifacts = stage.build(Version(1, 3, 0))

        assert [a.kind for a in artifacts] == [ArtifactKind.SDIST]

    def test_verify_uses_test_suite(self, tmp_path: Path):
        stage = BuildStage(tmp_path, BuildConfig(), FakeSuite(passed=False), FakeToolchain({}))

        result = stage.verify()

        assert not result.passed
        assert result.summary == "1 failed"


class TestClassifyArtifact:
    @pytest.mark.parametrize(
        ("name", "kind"),
        [
            ("pkg-1.0.0-py3-none-any.whl", ArtifactKind.WHEEL),
            ("pkg-1.0.0.tar.gz", ArtifactKind.SDIST),
            ("pkg-1.0.0.zip", ArtifactKind.SDIST),
            ("manifest.json", None),
        ],
    )
    def test_classify(self, name: str, kind: ArtifactKind | None):
        assert classify_artifact(Path(name)) == kind


def _py(code: str) -> str:
    return f'"{sys.executable}" -c "{code}"'


class TestCommandTestSuite:
    def test_passing_command(self, tmp_path: Path):
        result = CommandTestSuite(_py("print('5 passed')"), timeout=30).run(tmp_path)

        assert result.passed
        assert result.summary == "5 passed"

    def test_failing_command(self, tmp_path: Path):
        result = CommandTestSuite(_py("import sys; sys.exit(1)"), timeout=30).run(tmp_path)

        assert not result.passed

    def test_timeout_is_a_failure(self, tmp_path: Path):
        result = CommandTestSuite(_py("import time; time.sleep(5)"), timeout=0.2).run(tmp_path)

        assert not result.passed
        assert "timed out" in result.summary
        assert "2 attempt(s)" in result.summary

    def test_timeout_is_retried(self, tmp_path: Path):
        # First run leaves a marker and hangs; the second run passes.
        code = (
            "import pathlib, time; m = pathlib.Path('ran'); "
            "first = not m.exists(); m.touch(); "
            "time.sleep(30) if first else print('5 passed')"
        )

        result = CommandTestSuite(_py(code), timeout=3).run(tmp_path)

        assert result.passed
        assert result.summary == "5 passed"

    def test_failure_is_not_retried(self, tmp_path: Path):
        code = "import sys; open('runs', 'a').write('x'); sys.exit(1)"

        result = CommandTestSuite(_py(code), timeout=30).run(tmp_path)

        assert not result.passed
        assert (tmp_path / "runs").read_text() == "x"

    def test_missing_command(self, tmp_path: Path):
        result = CommandTestSuite("definitely-not-a-command-xyz", timeout=5).run(tmp_path)

        assert not result.passed
        assert "not found" in result.summary


class TestCommandToolchain:
    def test_failure_carries_diagnostic(self, tmp_path: Path):
        cmd = _py("import sys; sys.stderr.write('error: bad metadata'); sys.exit(2)")
        toolchain = CommandToolchain(cmd, tmp_path, timeout=30)

        with pytest.raises(BuildError) as exc_info:
            toolchain.build(Version(1, 0, 0), [ArtifactKind.WHEEL], tmp_path)

        assert "exit code 2" in str(exc_info.value)
        assert exc_info.value.diagnostic == "error: bad metadata"

    def test_out_dir_substitution(self, tmp_path: Path):
        out = tmp_path / "out"
        out.mkdir()
        cmd = _py("import sys, pathlib; pathlib.Path(sys.argv[1], 'x-1.0.0.tar.gz').write_bytes(b'x')")
        toolchain = CommandToolchain(cmd + " {out_dir}", tmp_path, timeout=30)

        produced = toolchain.build(Version(1, 0, 0), [ArtifactKind.SDIST], out)

        assert [p.name for p in produced] == ["x-1.0.0.tar.gz"]
