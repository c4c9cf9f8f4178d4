"""CLI for brabo_pipeline.

Commands:
- run
- status
- outputs
- clean
- doctor
"""

from __future__ import annotations

import argparse
import logging
import sys


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="brabo-pipeline")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to the application config.yaml",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # --- run ---
    run_parser = subparsers.add_parser(
        "run",
        help="Run (or resume) the calculation described by a calculation file.",
    )
    run_parser.add_argument("calc_file", help="Calculation file (YAML)")
    run_parser.add_argument(
        "--json",
        action="store_true",
        help="Output the final state as JSON.",
    )

    # --- status ---
    status_parser = subparsers.add_parser(
        "status",
        help="Show the saved state of a calculation.",
    )
    status_parser.add_argument("calc_file", help="Calculation file (YAML)")
    status_parser.add_argument(
        "--json",
        action="store_true",
        help="Output as JSON.",
    )

    # --- outputs ---
    outputs_parser = subparsers.add_parser(
        "outputs",
        help="Print a program output of the latest or a backed-up cycle.",
    )
    outputs_parser.add_argument("calc_file", help="Calculation file (YAML)")
    outputs_parser.add_argument(
        "--cycle",
        type=int,
        default=0,
        help="Backed-up cycle to show (default: 0 = latest output).",
    )
    outputs_parser.add_argument(
        "--kind",
        choices=["out", "stou", "aou", "aff"],
        default="out",
        help="Output to show: out (energy), stou (charges), aou (relax), aff.",
    )

    # --- clean ---
    clean_parser = subparsers.add_parser(
        "clean",
        help="Remove all files of a calculation that is not running.",
    )
    clean_parser.add_argument("calc_file", help="Calculation file (YAML)")

    # --- doctor ---
    subparsers.add_parser(
        "doctor",
        help="Check the configured executables.",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    log_level = logging.DEBUG if getattr(args, "verbose", False) else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        command_map = {
            "run": _cmd_run,
            "status": _cmd_status,
            "outputs": _cmd_outputs,
            "clean": _cmd_clean,
            "doctor": _cmd_doctor,
        }
        handler = command_map.get(args.command)
        if handler is None:
            parser.print_help()
            return 1
        return int(handler(args))
    except KeyboardInterrupt:
        return 130
    except (ValueError, OSError, RuntimeError) as exc:
        logging.error("%s", exc)
        return 1


def _cmd_run(args: argparse.Namespace) -> int:
    from app_config import load_app_config
    from runner.orchestrator import cmd_run

    app_config = load_app_config(getattr(args, "config", None))
    return cmd_run(
        calc_file=args.calc_file,
        json_output=args.json,
        verbose=args.verbose,
        app_config=app_config,
    )


def _cmd_status(args: argparse.Namespace) -> int:
    from app_config import load_app_config
    from runner.orchestrator import cmd_status

    app_config = load_app_config(getattr(args, "config", None))
    return cmd_status(
        calc_file=args.calc_file,
        json_output=args.json,
        app_config=app_config,
    )


def _cmd_outputs(args: argparse.Namespace) -> int:
    from runner.orchestrator import cmd_outputs

    return cmd_outputs(calc_file=args.calc_file, cycle=args.cycle, kind=args.kind)


def _cmd_clean(args: argparse.Namespace) -> int:
    from runner.orchestrator import cmd_clean

    return cmd_clean(calc_file=args.calc_file)


def _cmd_doctor(args: argparse.Namespace) -> int:
    from app_config import load_app_config
    from runner.doctor import run_doctor

    return run_doctor(load_app_config(getattr(args, "config", None)))


if __name__ == "__main__":
    raise SystemExit(main())
