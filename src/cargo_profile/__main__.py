from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import cast

from . import workflow
from .cargo import CargoTarget, TargetKind
from .model import RunMode
from .profiling.backends import DEFAULT_FREQUENCY_HZ

PROG = "cargo-profile"


def _positive_int(value: str) -> int:
    try:
        n = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: {value!r}") from None
    if n <= 0:
        raise argparse.ArgumentTypeError(f"must be > 0 (got {n})")
    return n


def _add_profile_options(p: argparse.ArgumentParser, *, top: bool = False) -> None:
    p.add_argument("--root", action="store_true", help="Run the profiler through sudo.")
    p.add_argument("--release", action="store_true", help="Build with the release profile.")
    p.add_argument("--freq", type=_positive_int, default=DEFAULT_FREQUENCY_HZ, help="Sampling frequency in Hz.")
    p.add_argument(
        "--out-dir",
        type=Path,
        default=None,
        help="Artifacts root (default: <cargo workspace>/target/cargo-profile).",
    )
    p.add_argument("--run-id", default=None, help="Filesystem-safe run id (default: timestamp).")
    if top:
        p.add_argument("--top", type=_positive_int, default=None, help="Only print the N most expensive functions.")


def _add_target_subparsers(p: argparse.ArgumentParser, *, required: bool = True) -> None:
    targets = p.add_subparsers(dest="target", required=required, metavar="TARGET")

    bin_p = targets.add_parser("bin", help="Profile a binary target.")
    bin_p.add_argument("name")
    bin_p.add_argument("args", nargs="*", help="Arguments for the program (put them after `--`).")

    bench = targets.add_parser("bench", help="Profile benchmark executables (always release).")
    bench.add_argument("--lib", action="store_true")
    bench.add_argument("--bench", dest="name", default=None)
    bench.add_argument("--benches", dest="all", action="store_true")
    bench.add_argument("args", nargs="*")

    test = targets.add_parser("test", help="Profile test executables.")
    test.add_argument("--lib", action="store_true")
    test.add_argument("--test", dest="name", default=None)
    test.add_argument("--tests", dest="all", action="store_true")
    test.add_argument("args", nargs="*")

    example = targets.add_parser("example", help="Profile an example.")
    example.add_argument("name")
    example.add_argument("args", nargs="*")

    examples = targets.add_parser("examples", help="Profile all examples.")
    examples.add_argument("args", nargs="*")


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser for `cargo profile`."""
    parser = argparse.ArgumentParser(
        prog=PROG,
        description="Build a cargo target and profile it with perf (Linux), dtrace or Xcode Instruments (macOS).",
    )
    sub = parser.add_subparsers(dest="cmd", required=True)

    fg = sub.add_parser("flamegraph", help="Record and render an SVG flamegraph.")
    _add_profile_options(fg)
    _add_target_subparsers(fg)

    cpu = sub.add_parser("cpu", help="CPU time reports.")
    cpu_sub = cpu.add_subparsers(dest="cpu_cmd", required=True)
    per_fn = cpu_sub.add_parser("per-fn", help="Per-function total and own CPU time.")
    _add_profile_options(per_fn, top=True)
    _add_target_subparsers(per_fn)

    report = sub.add_parser("report", help="Per-function report from an existing collapsed-stack file.")
    report.add_argument("collapsed", type=Path)
    report.add_argument("--top", type=_positive_int, default=None)
    report.add_argument("--flamegraph", type=Path, default=None, help="Also render an SVG flamegraph here.")

    inst = sub.add_parser("instruments", help="Record with Xcode Instruments (`xcrun xctrace`, macOS only).")
    inst.add_argument("-l", "--list-templates", action="store_true", help="List available templates and exit.")
    inst.add_argument("-t", "--template", default=None, help="Instruments template to record with (see --list-templates).")
    inst.add_argument(
        "--time-limit", type=_positive_int, default=None, metavar="MILLIS", help="Stop recording after this many ms."
    )
    inst.add_argument("--no-open", action="store_true", help="Do not open the trace in Instruments.app.")
    inst.add_argument("--release", action="store_true", help="Build with the release profile.")
    inst.add_argument("--out-dir", type=Path, default=None, help="Artifacts root (traces go to <out-dir>/instruments).")
    inst.add_argument("--run-id", default=None, help="Filesystem-safe run id (default: timestamp).")
    _add_target_subparsers(inst, required=False)

    return parser


def split_program_args(argv: list[str]) -> tuple[list[str], list[str]]:
    """Split at the first `--`: (cargo-profile args, program args)."""
    if "--" in argv:
        i = argv.index("--")
        return argv[:i], argv[i + 1 :]
    return argv, []


def target_from_namespace(ns: argparse.Namespace, extra_args: list[str]) -> CargoTarget:
    return CargoTarget(
        kind=cast(TargetKind, ns.target),
        name=getattr(ns, "name", None),
        lib=getattr(ns, "lib", False),
        all=getattr(ns, "all", False),
        args=tuple([*ns.args, *extra_args]),
    )


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint. Returns process exit code."""
    args = list(sys.argv[1:] if argv is None else argv)
    # `cargo profile ...` invokes us as `cargo-profile profile ...`.
    if args and args[0] == "profile":
        args = args[1:]
    head, program_args = split_program_args(args)

    parser = build_parser()
    ns = parser.parse_args(head)

    if ns.cmd == "report":
        return workflow.report_run(ns.collapsed, top=ns.top, flamegraph_path=ns.flamegraph)

    if ns.cmd == "instruments":
        if ns.list_templates:
            return workflow.instruments_list_templates()
        if ns.template is None:
            parser.error("instruments: --template is required unless --list-templates is given")
        if ns.target is None:
            parser.error("instruments: a TARGET is required")
        return workflow.instruments_run(
            target=target_from_namespace(ns, program_args),
            template=ns.template,
            time_limit_ms=ns.time_limit,
            open_trace=not ns.no_open,
            release=ns.release,
            out_dir=ns.out_dir,
            run_id=ns.run_id,
        )

    if ns.cmd in {"flamegraph", "cpu"}:
        mode: RunMode = "flamegraph" if ns.cmd == "flamegraph" else "per-fn"
        return workflow.run(
            mode=mode,
            target=target_from_namespace(ns, program_args),
            release=ns.release,
            root=ns.root,
            freq=ns.freq,
            out_dir=ns.out_dir,
            run_id=ns.run_id,
            top=getattr(ns, "top", None),
        )

    raise AssertionError(f"Unhandled cmd: {ns.cmd}")


if __name__ == "__main__":
    raise SystemExit(main())
