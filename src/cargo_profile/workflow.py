from __future__ import annotations

import shlex
import subprocess
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import attrs

from . import artifacts, cargo, flamegraph, paths, per_fn, prereqs
from .cargo import BinFile, CargoTarget
from .errors import EmptyProfileError, ProfileError, UnsupportedPlatformError
from .model import BinaryArtifacts, ProfileRun, RunMode
from .per_fn.parser import parse_collapsed
from .per_fn.report import print_report, write_markdown_report, write_report_json
from .profiling import instruments, recorder
from .profiling.backends import DEFAULT_FREQUENCY_HZ, ProfilerBackend, detect_backend


def _now_rfc3339() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def _default_run_id() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%SZ")


def _git_info(cwd: Path) -> dict[str, Any]:
    try:
        branch = (
            subprocess.check_output(["git", "rev-parse", "--abbrev-ref", "HEAD"], cwd=cwd, stderr=subprocess.DEVNULL)
            .decode()
            .strip()
        )
        commit = (
            subprocess.check_output(["git", "rev-parse", "HEAD"], cwd=cwd, stderr=subprocess.DEVNULL).decode().strip()
        )
        dirty = bool(
            subprocess.check_output(["git", "status", "--porcelain"], cwd=cwd, stderr=subprocess.DEVNULL).decode().strip()
        )
        return {"branch": branch, "commit": commit, "dirty": dirty}
    except (OSError, subprocess.CalledProcessError):
        return {"branch": "unknown", "commit": "unknown", "dirty": False}


def warn_ignored(ignored: int) -> None:
    if ignored:
        print(f"warning: {ignored} malformed line(s) ignored", file=sys.stderr)


def _profile_binary(
    *,
    mode: RunMode,
    backend: ProfilerBackend,
    binary: BinFile,
    target: CargoTarget,
    root: bool,
    freq: int,
    artifacts_dir: Path,
    dir_name: str,
    top: int | None,
    cwd: Path | None,
) -> BinaryArtifacts:
    """Record, collapse and report one executable."""
    binary_dir, raw_dir = artifacts.create_binary_dirs(artifacts_dir, dir_name)
    argv = backend.record_argv(root=root, binary=binary, args=list(target.args), raw_dir=raw_dir, freq=freq)
    out = BinaryArtifacts(
        binary=binary.path,
        binary_dir=binary_dir,
        raw_dir=raw_dir,
        collapsed_path=binary_dir / artifacts.COLLAPSED_FILENAME,
        record_command=shlex.join(argv),
    )

    print(f"Profiling {binary.path}", file=sys.stderr)
    recorder.run_profiler(argv, cwd=cwd)

    collapsed = backend.to_collapsed(root=root, raw_dir=raw_dir)
    out.collapsed_path.write_text(collapsed)
    parsed = parse_collapsed(collapsed)

    if mode == "flamegraph":
        svg = flamegraph.save_flamegraph(parsed, binary_dir / artifacts.FLAMEGRAPH_FILENAME, title=binary.path.name)
        out = attrs.evolve(
            out,
            flamegraph_path=svg,
            total_time=sum(s.weight for s in parsed.samples),
            ignored_lines=parsed.ignored,
        )
        print(f"Wrote {svg}", file=sys.stderr)
    else:
        table = per_fn.aggregate(per_fn.merge_frames(parsed))
        print_report(table, top=top)
        json_path = binary_dir / artifacts.PER_FN_JSON_FILENAME
        write_report_json(table, json_path)
        md_path = write_markdown_report(
            table, binary_dir / artifacts.PER_FN_MD_FILENAME, title=f"Per-function CPU time: {binary.path.name}"
        )
        out = attrs.evolve(
            out,
            per_fn_json_path=json_path,
            per_fn_md_path=md_path,
            total_time=table.total_time,
            ignored_lines=table.ignored,
        )

    warn_ignored(parsed.ignored)
    return out


def run(
    *,
    mode: RunMode,
    target: CargoTarget,
    release: bool = False,
    root: bool = False,
    freq: int = DEFAULT_FREQUENCY_HZ,
    out_dir: Path | None = None,
    run_id: str | None = None,
    top: int | None = None,
    cwd: Path | None = None,
) -> int:
    """Build `target`, profile every produced executable and write its reports.

    Always attempts to write `metadata.json` in the per-run artifacts dir.
    """
    work_dir = (cwd or Path.cwd()).resolve()
    out_root = out_dir if out_dir is not None else paths.default_out_dir(work_dir)
    chosen_run_id = run_id or _default_run_id()

    try:
        artifacts_dir = paths.run_artifacts_dir(out_dir=out_root, run_id=chosen_run_id)
        artifacts.ensure_new_run_dir(artifacts_dir)
        artifacts.create_run_dir(artifacts_dir)
    except FileExistsError as e:
        print(str(e), file=sys.stderr)
        return 2
    except (OSError, ValueError) as e:
        print(f"Failed to create run dir: {e}", file=sys.stderr)
        return 2

    backend: ProfilerBackend | None
    try:
        backend = detect_backend()
    except UnsupportedPlatformError:
        backend = None

    build_cmd = shlex.join(cargo.build_cargo_argv(target, release=release))
    run_meta = ProfileRun(
        run_id=paths.sanitize_run_id(chosen_run_id),
        started_at=_now_rfc3339(),
        finished_at=None,
        status="fail",
        failure_reason=None,
        mode=mode,
        backend=None if backend is None else backend.name,
        release=release,
        root=root,
        frequency_hz=freq,
        target=target.to_dict(),
        artifacts_dir=artifacts_dir,
        git=_git_info(work_dir),
        commands={"build": build_cmd},
    )

    binaries: list[BinFile] | None = None
    exit_code = 1
    try:
        checks = prereqs.check_all(backend=backend, root=root, out_dir=out_root)
        run_meta = attrs.evolve(run_meta, prerequisites=checks)
        if backend is None or any(c.status == "fail" for c in checks):
            print(prereqs.format_prereq_failures(checks), file=sys.stderr)
            run_meta = attrs.evolve(run_meta, failure_reason="missing_prerequisites")
            exit_code = 2
            return exit_code

        binaries = cargo.compile_target(target, release=release, cwd=work_dir)

        taken: set[str] = set()
        for binary in binaries:
            profiled = _profile_binary(
                mode=mode,
                backend=backend,
                binary=binary,
                target=target,
                root=root,
                freq=freq,
                artifacts_dir=artifacts_dir,
                dir_name=paths.binary_dir_name(binary.path, taken),
                top=top,
                cwd=work_dir,
            )
            run_meta = attrs.evolve(run_meta, binaries=[*run_meta.binaries, profiled])

        run_meta = attrs.evolve(run_meta, status="pass")
        exit_code = 0
    except ProfileError as e:
        print(f"error: {e}", file=sys.stderr)
        run_meta = attrs.evolve(run_meta, status="fail", failure_reason=str(e))
        exit_code = 1
    except Exception as e:
        print(f"error: {e}", file=sys.stderr)
        run_meta = attrs.evolve(run_meta, status="fail", failure_reason=f"{type(e).__name__}: {e}")
        exit_code = 1
    finally:
        run_meta = attrs.evolve(run_meta, finished_at=_now_rfc3339())
        payload = artifacts.metadata_payload(
            run_meta, binaries_built=None if binaries is None else [b.path for b in binaries]
        )
        try:
            artifacts.write_metadata(artifacts_dir / artifacts.METADATA_FILENAME, payload)
            artifacts.write_readme(artifacts_dir, run_meta)
        except Exception as e:
            print(f"Failed to write metadata: {e}", file=sys.stderr)
            return 2

    print(f"Artifacts: {artifacts_dir}", file=sys.stderr)
    return exit_code


def report_run(collapsed_path: Path, *, top: int | None = None, flamegraph_path: Path | None = None) -> int:
    """Report on an existing collapsed-stack file (no build, no profiler)."""
    try:
        text = collapsed_path.read_text(errors="replace")
    except OSError as e:
        print(f"Failed to read {collapsed_path}: {e}", file=sys.stderr)
        return 2

    parsed = parse_collapsed(text)
    try:
        table = per_fn.aggregate(per_fn.merge_frames(parsed))
    except EmptyProfileError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    print_report(table, top=top)
    if flamegraph_path is not None:
        flamegraph.save_flamegraph(parsed, flamegraph_path, title=collapsed_path.name)
        print(f"Wrote {flamegraph_path}", file=sys.stderr)
    warn_ignored(parsed.ignored)
    return 0


def instruments_list_templates() -> int:
    check = prereqs.check_xcrun_available()
    if check.status == "fail":
        print(prereqs.format_prereq_failures([check]), file=sys.stderr)
        return 2
    try:
        print(instruments.list_templates(), end="")
    except ProfileError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0


def instruments_run(
    *,
    target: CargoTarget,
    template: str,
    time_limit_ms: int | None = None,
    open_trace: bool = True,
    release: bool = False,
    out_dir: Path | None = None,
    run_id: str | None = None,
    cwd: Path | None = None,
    system: str | None = None,
) -> int:
    """Build `target` (exactly one executable) and record it with `xctrace` using `template`.

    The trace lands in `<out_dir>/instruments/<run_id>/` and is opened in
    Instruments.app unless `open_trace` is False.
    """
    work_dir = (cwd or Path.cwd()).resolve()
    out_root = (out_dir if out_dir is not None else paths.default_out_dir(work_dir)) / "instruments"

    checks = [
        prereqs.check_macos(system),
        prereqs.check_cargo_available(),
        prereqs.check_xcrun_available(),
        prereqs.check_out_dir_writable(out_root),
    ]
    if any(c.status == "fail" for c in checks):
        print(prereqs.format_prereq_failures(checks), file=sys.stderr)
        return 2

    try:
        trace_dir = paths.run_artifacts_dir(out_dir=out_root, run_id=run_id or _default_run_id())
        artifacts.ensure_new_run_dir(trace_dir)
        artifacts.create_run_dir(trace_dir)
    except FileExistsError as e:
        print(str(e), file=sys.stderr)
        return 2
    except (OSError, ValueError) as e:
        print(f"Failed to create run dir: {e}", file=sys.stderr)
        return 2

    try:
        binaries = cargo.compile_target(target, release=release, cwd=work_dir)
        if len(binaries) != 1:
            built = ", ".join(str(b.path) for b in binaries)
            raise ProfileError(f"instruments only supports one binary, but the build produced {len(binaries)}: {built}")
        binary = binaries[0]

        if instruments.needs_codesign():
            instruments.codesign(binary.path)

        trace = instruments.trace_path(trace_dir, binary, template)
        argv = instruments.record_argv(
            template=template, binary=binary, args=list(target.args), output=trace, time_limit_ms=time_limit_ms
        )
        print(f"Profiling {binary.path}", file=sys.stderr)
        recorder.run_profiler(argv, cwd=work_dir)

        try:
            shown = trace.relative_to(work_dir)
        except ValueError:
            shown = trace
        print(f"Trace file {shown}", file=sys.stderr)

        if open_trace:
            instruments.open_trace(trace)
    except ProfileError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0
