from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any

import pytest

from cargo_profile import cargo, prereqs, workflow
from cargo_profile.cargo import BinFile, CargoTarget
from cargo_profile.errors import ProfilerProcessError, UnsupportedPlatformError
from cargo_profile.model import PrerequisiteCheck
from cargo_profile.profiling import recorder

COLLAPSED = "app`main;app`work 10\napp`main;app`idle 5\nnot a stack\n"


class FakeBackend:
    name = "perf"

    def __init__(self, collapsed: str = COLLAPSED) -> None:
        self.collapsed = collapsed

    def tool(self) -> str:
        return "perf"

    def record_argv(self, *, root: bool, binary: BinFile, args: list[str], raw_dir: Path, freq: int) -> list[str]:
        return ["perf", "record", "-F", str(freq), "-o", str(raw_dir / "perf.data"), str(binary.path), *args]

    def to_collapsed(self, *, root: bool, raw_dir: Path) -> str:
        return self.collapsed


@pytest.fixture
def env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> dict[str, Any]:
    state: dict[str, Any] = {
        "backend": FakeBackend(),
        "checks": [PrerequisiteCheck(check_name="cargo_available", status="pass")],
        "binaries": [BinFile(path=Path("/t/debug/app"))],
        "recorded": [],
    }

    monkeypatch.setattr(workflow, "detect_backend", lambda: state["backend"])
    monkeypatch.setattr(prereqs, "check_all", lambda **kw: state["checks"])
    monkeypatch.setattr(cargo, "compile_target", lambda target, *, release, cwd=None: state["binaries"])

    def fake_run_profiler(argv: list[str], *, cwd: Path | None = None) -> int:
        state["recorded"].append(argv)
        return 0

    monkeypatch.setattr(recorder, "run_profiler", fake_run_profiler)
    state["out_dir"] = tmp_path / "out"
    return state


def _run(env: dict[str, Any], tmp_path: Path, **kw: Any) -> int:
    args: dict[str, Any] = dict(
        mode="per-fn",
        target=CargoTarget("bin", name="app", args=("--n", "3")),
        out_dir=env["out_dir"],
        run_id="r1",
        cwd=tmp_path,
    )
    args.update(kw)
    return workflow.run(**args)


def _metadata(env: dict[str, Any]) -> dict[str, Any]:
    return json.loads((env["out_dir"] / "r1" / "metadata.json").read_text())


def test_per_fn_run_writes_reports(env: dict[str, Any], tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(env, tmp_path) == 0

    out = capsys.readouterr()
    assert out.out.splitlines()[0].startswith("Total time")
    assert "work" in out.out
    assert "Profiling /t/debug/app" in out.err
    assert "1 malformed line(s) ignored" in out.err

    app_dir = env["out_dir"] / "r1" / "app"
    assert (app_dir / "raw").is_dir()
    assert (app_dir / "stacks.folded").read_text() == COLLAPSED
    assert json.loads((app_dir / "per_fn.json").read_text())["total_time"] == 15
    assert (app_dir / "per_fn.md").exists()
    assert (env["out_dir"] / "r1" / "README.md").exists()
    assert env["recorded"][0][-3:] == ["/t/debug/app", "--n", "3"]

    meta = _metadata(env)["profile_run"]
    assert meta["status"] == "pass"
    assert meta["backend"] == "perf"
    assert meta["binaries"][0]["ignored_lines"] == 1
    assert meta["commands"]["build"].endswith("--message-format=json")
    assert _metadata(env)["binaries_built"] == ["/t/debug/app"]


def test_flamegraph_run(env: dict[str, Any], tmp_path: Path) -> None:
    assert _run(env, tmp_path, mode="flamegraph") == 0
    svg = env["out_dir"] / "r1" / "app" / "flamegraph.svg"
    assert "<svg" in svg.read_text()
    assert not (env["out_dir"] / "r1" / "app" / "per_fn.json").exists()
    assert _metadata(env)["profile_run"]["binaries"][0]["total_time"] == 15


def test_multiple_binaries_are_profiled_in_order(env: dict[str, Any], tmp_path: Path) -> None:
    env["binaries"] = [BinFile(path=Path("/t/a/app")), BinFile(path=Path("/t/b/app"))]
    assert _run(env, tmp_path) == 0
    assert [argv[-3] for argv in env["recorded"]] == ["/t/a/app", "/t/b/app"]
    assert (env["out_dir"] / "r1" / "app-2" / "per_fn.json").exists()


def test_existing_run_dir_is_refused(env: dict[str, Any], tmp_path: Path) -> None:
    (env["out_dir"] / "r1").mkdir(parents=True)
    assert _run(env, tmp_path) == 2


def test_missing_prerequisites(env: dict[str, Any], tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    env["checks"] = [PrerequisiteCheck(check_name="profiler_available", status="fail", details="`perf` not found")]
    assert _run(env, tmp_path) == 2
    assert "profiler_available" in capsys.readouterr().err
    meta = _metadata(env)["profile_run"]
    assert meta["status"] == "fail"
    assert meta["failure_reason"] == "missing_prerequisites"
    assert env["recorded"] == []


def test_unsupported_platform(env: dict[str, Any], tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def unsupported() -> None:
        raise UnsupportedPlatformError("Plan9")

    monkeypatch.setattr(workflow, "detect_backend", unsupported)
    assert _run(env, tmp_path) == 2
    assert _metadata(env)["profile_run"]["backend"] is None
    assert env["recorded"] == []


def test_profiler_failure(env: dict[str, Any], tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def failing(argv: list[str], *, cwd: Path | None = None) -> int:
        raise ProfilerProcessError("failed to sample program (exit 1)", command="perf record", returncode=1)

    monkeypatch.setattr(recorder, "run_profiler", failing)
    assert _run(env, tmp_path) == 1
    meta = _metadata(env)["profile_run"]
    assert meta["status"] == "fail"
    assert "perf record" in meta["failure_reason"]


def test_empty_profile(env: dict[str, Any], tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    env["backend"] = FakeBackend(collapsed="")
    assert _run(env, tmp_path) == 1
    assert "no usable samples" in capsys.readouterr().err


def test_report_run(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    collapsed = tmp_path / "stacks.folded"
    collapsed.write_text(COLLAPSED)
    svg = tmp_path / "fg.svg"
    assert workflow.report_run(collapsed, top=2, flamegraph_path=svg) == 0
    out = capsys.readouterr()
    assert len(out.out.splitlines()) == 3
    assert "1 malformed line(s) ignored" in out.err
    assert svg.exists()


def test_report_run_errors(tmp_path: Path) -> None:
    assert workflow.report_run(tmp_path / "missing.folded") == 2
    empty = tmp_path / "empty.folded"
    empty.write_text("\n")
    assert workflow.report_run(empty) == 1


@pytest.mark.skipif(sys.platform == "win32", reason="git/posix paths")
def test_git_info_outside_repo(tmp_path: Path) -> None:
    info = workflow._git_info(tmp_path)
    assert set(info) == {"branch", "commit", "dirty"}
