#!/usr/bin/env python3
"""
plutohostctl - Pluto notebook host startup CLI

Synchronizes the configured notebook repositories, rebuilds the notebook
index, and hands over to PlutoSliderServer.
"""
import argparse
import logging
import sys

from plutohost.errors import PlutohostError
from plutohost.orchestrator import Orchestrator, PipelineState
from plutohost.readiness import FAIL, OK, WARN, run_checks
from plutohost.settings import Settings


STATUS_GLYPHS = {OK: "✅", WARN: "⚠️ ", FAIL: "❌"}


def configure_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="[%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr
    )


def cmd_run(settings: Settings) -> int:
    run = Orchestrator(settings).run()
    return run.exit_status or 0


def cmd_sync(settings: Settings) -> int:
    Orchestrator(settings).run(stop_after=PipelineState.SYNCED)
    return 0


def cmd_index(settings: Settings) -> int:
    Orchestrator(settings).index_only()
    return 0


def cmd_check(settings: Settings) -> int:
    print("🔍 Pluto Slider Server deployment check")
    print("=" * 50)

    results = run_checks(settings)
    for result in results:
        print(f"{STATUS_GLYPHS[result.status]} {result.name}: {result.message}")

    failed = [r for r in results if r.status == FAIL]
    print()
    if failed:
        print(f"❌ {len(failed)} check(s) failed")
        return 1
    print("🎉 Ready to start")
    return 0


COMMANDS = {
    'run': cmd_run,
    'sync': cmd_sync,
    'index': cmd_index,
    'check': cmd_check,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='plutohost',
        description='Pluto notebook host: sync repositories, index notebooks, start PlutoSliderServer',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable debug logging (shows git commands)'
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to execute (default: run)')
    subparsers.add_parser('run', help='Sync, index, then start the server')
    subparsers.add_parser('sync', help='Sync repositories only')
    subparsers.add_parser('index', help='Rebuild the notebook index from existing working copies')
    subparsers.add_parser('check', help='Check that this environment is ready to start')
    return parser


def main(argv=None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    command = args.command or 'run'

    try:
        settings = Settings()
    except PlutohostError as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        return 1

    try:
        return COMMANDS[command](settings)
    except PlutohostError:
        # Already reported by the orchestrator
        return 1


if __name__ == '__main__':
    sys.exit(main())
