from __future__ import annotations

import stat
import sys
from pathlib import Path

import pytest

from cargo_profile.cargo import BinFile
from cargo_profile.errors import ProfilerProcessError, UnsupportedPlatformError
from cargo_profile.profiling.backends import DEFAULT_FREQUENCY_HZ, DtraceBackend, PerfBackend, detect_backend

APP = BinFile(path=Path("/x/app"))


def test_default_frequency() -> None:
    assert DEFAULT_FREQUENCY_HZ == 997


def test_perf_record_argv(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("PERF", raising=False)
    argv = PerfBackend().record_argv(root=False, binary=APP, args=["--n", "3"], raw_dir=tmp_path, freq=997)
    assert argv == [
        "perf",
        "record",
        "-F",
        "997",
        "--call-graph",
        "dwarf",
        "-g",
        "-o",
        str(tmp_path / "perf.data"),
        "/x/app",
        "--n",
        "3",
    ]


def test_perf_root_and_env_override(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PERF", "/usr/local/bin/perf")
    argv = PerfBackend().record_argv(root=True, binary=APP, args=[], raw_dir=tmp_path, freq=99)
    assert argv[:5] == ["sudo", "/usr/local/bin/perf", "record", "-F", "99"]


def test_dtrace_record_argv(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DTRACE", raising=False)
    argv = DtraceBackend().record_argv(root=True, binary=APP, args=["a b"], raw_dir=tmp_path, freq=997)
    assert argv == [
        "sudo",
        "dtrace",
        "-x",
        "ustackframes=100",
        "-n",
        "profile-997 /pid == $target/ { @[ustack(100)] = count(); }",
        "-o",
        str(tmp_path / "cargo-profile.stacks"),
        "-c",
        "/x/app 'a b'",
    ]


def test_dtrace_to_collapsed(tmp_path: Path) -> None:
    (tmp_path / "cargo-profile.stacks").write_text("  app`main+0x4\n  7\n")
    assert DtraceBackend().to_collapsed(root=False, raw_dir=tmp_path) == "app`main 7\n"


def test_dtrace_to_collapsed_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ProfilerProcessError, match="stacks file"):
        DtraceBackend().to_collapsed(root=False, raw_dir=tmp_path)


def _fake_perf(tmp_path: Path, body: str) -> Path:
    script = tmp_path / "fake-perf"
    script.write_text("#!/bin/sh\n" + body)
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script


@pytest.mark.skipif(sys.platform == "win32", reason="uses /bin/sh scripts")
def test_perf_to_collapsed_runs_perf_script(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    fixture = tmp_path / "script.txt"
    fixture.write_text("app 1 1.0: 1 cycles:\n\t 10 work+0x1 (/x/app)\n\t 20 main+0x2 (/x/app)\n\n")
    monkeypatch.setenv("PERF", str(_fake_perf(tmp_path, f'[ "$1" = script ] || exit 9\ncat "{fixture}"\n')))
    assert PerfBackend().to_collapsed(root=False, raw_dir=tmp_path) == "app`main;app`work 1\n"


@pytest.mark.skipif(sys.platform == "win32", reason="uses /bin/sh scripts")
def test_perf_to_collapsed_failure(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PERF", str(_fake_perf(tmp_path, "exit 1\n")))
    with pytest.raises(ProfilerProcessError) as exc:
        PerfBackend().to_collapsed(root=False, raw_dir=tmp_path)
    assert exc.value.returncode == 1
    assert "script -i" in str(exc.value)


def test_detect_backend() -> None:
    assert isinstance(detect_backend("Linux"), PerfBackend)
    assert isinstance(detect_backend("Darwin"), DtraceBackend)
    with pytest.raises(UnsupportedPlatformError, match="Windows"):
        detect_backend("Windows")
