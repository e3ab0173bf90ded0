from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional

from retroemu.config import ConfigError, load_config
from retroemu.manager import EmulationManager


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="retroemu",
        description="Turbo Assembler 3.0 and Turbo Pascal 7.0 simulation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--workspace", type=Path, help="Workspace directory for source files")
    parser.add_argument("--config", type=Path, help="JSON configuration file")
    parser.add_argument("--verbose", "-v", action="count", default=0, help="Increase verbosity (-v, -vv)")
    parser.add_argument("--quiet", "-q", action="store_true", help="Only report errors")

    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run", help="Compile and execute a workspace file")
    run.add_argument("emulator", help="asm or pascal")
    run.add_argument("filename")

    compile_cmd = commands.add_parser("compile", help="Compile a workspace file without running it")
    compile_cmd.add_argument("emulator", help="asm or pascal")
    compile_cmd.add_argument("filename")

    sample = commands.add_parser("sample", help="Write a sample program into the workspace")
    sample.add_argument("emulator", help="asm or pascal")
    sample.add_argument("name", help="Sample name, e.g. hello")

    commands.add_parser("list", help="List workspace files")

    help_cmd = commands.add_parser("help", help="Show emulator help")
    help_cmd.add_argument("emulator", nargs="?")
    return parser


def setup_logging(verbose: int, quiet: bool) -> None:
    if quiet:
        level = logging.ERROR
    elif verbose == 0:
        level = logging.WARNING
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(levelname)s: %(name)s: %(message)s"))
    logging.basicConfig(level=level, handlers=[handler], force=True)


def _fail(response: Dict[str, Any]) -> int:
    print(f"Error: {response['message']}", file=sys.stderr)
    return 1


def _load_source(manager: EmulationManager, emulator: str, filename: str) -> Optional[str]:
    response = manager.initialize_emulator(emulator)
    if not response["success"]:
        _fail(response)
        return None
    print(response["header"])
    loaded = manager.load_file(filename)
    if not loaded["success"]:
        _fail(loaded)
        return None
    return loaded["source"]


def _cmd_run(manager: EmulationManager, args: argparse.Namespace) -> int:
    source = _load_source(manager, args.emulator, args.filename)
    if source is None:
        return 1
    response = manager.compile_and_execute(source)
    print(response["display"])
    return 0 if response["success"] else 1


def _cmd_compile(manager: EmulationManager, args: argparse.Namespace) -> int:
    source = _load_source(manager, args.emulator, args.filename)
    if source is None:
        return 1
    response = manager.compile(source)
    print(response["display"])
    return 0 if response["success"] else 1


def _cmd_sample(manager: EmulationManager, args: argparse.Namespace) -> int:
    response = manager.create_sample(args.emulator, args.name)
    if not response["success"]:
        return _fail(response)
    print(response["message"])
    return 0


def _cmd_list(manager: EmulationManager, args: argparse.Namespace) -> int:
    response = manager.list_files()
    if not response["success"]:
        return _fail(response)
    print(response["message"])
    for entry in response["files"]:
        stamp = entry["modified"].strftime("%Y-%m-%d %H:%M")
        print(f"  {entry['name']:<24} {entry['size']:>8}  {stamp}")
    return 0


def _cmd_help(manager: EmulationManager, args: argparse.Namespace) -> int:
    response = manager.get_help(args.emulator)
    print(response["message"])
    print(response["help"])
    return 0


COMMANDS = {
    "run": _cmd_run,
    "compile": _cmd_compile,
    "sample": _cmd_sample,
    "list": _cmd_list,
    "help": _cmd_help,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose, args.quiet)
    try:
        config = load_config(args.config)
    except ConfigError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 2
    if args.workspace is not None:
        config = replace(config, workspace=args.workspace)
    manager = EmulationManager(config)
    logger.debug("Workspace: %s", manager.workspace)
    return COMMANDS[args.command](manager, args)


if __name__ == "__main__":
    sys.exit(main())
