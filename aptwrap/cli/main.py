"""Main CLI entry point for aptwrap"""

import argparse
import logging
import sys
from pathlib import Path

from .. import __version__
from ..core.config import LockPolicy, load_config
from ..core.errors import Cancelled, CommandFailed, LockTimeout, OutputReadError, SpawnError
from ..core.operations import AptOperations
from . import colors
from .display import EventPrinter

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_LOCK_TIMEOUT = 3
EXIT_CANCELLED = 130

# alias -> canonical command
ALIASES = {
    'i': 'install',
    'r': 'remove',
    'u': 'upgrade',
    'up': 'update',
}


def _add_package_command(subparsers, name, aliases, help_text):
    parser = subparsers.add_parser(name, aliases=aliases, help=help_text)
    parser.add_argument('packages', nargs='+', metavar='PACKAGE', help='Package names')
    parser.add_argument('--raw', action='store_true',
                        help='Show apt-get output instead of progress events')
    return parser


def create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser with all commands and aliases."""

    parser = argparse.ArgumentParser(
        prog='aptwrap',
        description='Run apt-get/dpkg non-interactively, waiting for package manager locks',
        epilog='Use "aptwrap <command> --help" for command-specific help.'
    )

    parser.add_argument(
        '--version', '-V',
        action='version',
        version=f'aptwrap {__version__}'
    )
    parser.add_argument('--verbose', '-v', action='store_true', help='Verbose output')
    parser.add_argument('--quiet', '-q', action='store_true', help='Only show errors')
    parser.add_argument('--nocolor', action='store_true', help='Disable colored output')
    parser.add_argument('--config', type=Path, default=None,
                        help='Config file (default: /etc/aptwrap.conf)')
    parser.add_argument('--lock-attempts', type=int, default=None, metavar='N',
                        help='Lock polls before giving up (16ms each)')
    parser.add_argument('--fail-closed', action='store_true',
                        help='Treat lock files that cannot be checked as locked')

    subparsers = parser.add_subparsers(dest='command', metavar='<command>')

    _add_package_command(subparsers, 'install', ['i'], 'Install packages')
    _add_package_command(subparsers, 'remove', ['r'], 'Remove packages (and unused dependencies)')
    _add_package_command(subparsers, 'purge', [], 'Remove packages and their configuration')
    _add_package_command(subparsers, 'reinstall', [], 'Reinstall packages')

    for name, aliases, help_text in (
        ('upgrade', ['u'], 'Upgrade the whole system (full-upgrade)'),
        ('update', ['up'], 'Refresh package indexes'),
        ('autoremove', [], 'Remove unused dependencies'),
        ('fix-broken', [], 'Repair broken dependencies (install -f)'),
    ):
        sub = subparsers.add_parser(name, aliases=aliases, help=help_text)
        sub.add_argument('--raw', action='store_true',
                         help='Show apt-get output instead of progress events')

    subparsers.add_parser('configure', help='Finish interrupted installs (dpkg --configure -a)')

    hold = subparsers.add_parser('hold', help='Prevent a package from being upgraded')
    hold.add_argument('package', help='Package name')
    unhold = subparsers.add_parser('unhold', help='Allow a held package to be upgraded')
    unhold.add_argument('package', help='Package name')

    installed = subparsers.add_parser('installed', help='List which packages are installed')
    installed.add_argument('packages', nargs='+', metavar='PACKAGE', help='Package names')

    return parser


def build_operations(args) -> AptOperations:
    """Create AptOperations from the config file and command-line overrides."""
    config = load_config(args.config)
    if args.lock_attempts is not None:
        config.lock_attempts = args.lock_attempts
    if args.fail_closed:
        config.lock_policy = LockPolicy.FAIL_CLOSED
    return AptOperations(config)


def run_command(command: str, args, ops: AptOperations, printer: EventPrinter) -> int:
    """Dispatch one (canonical) command."""
    on_event = None if getattr(args, 'raw', False) else printer
    readiness = printer.readiness

    if command == 'install':
        ops.install(args.packages, readiness, on_event)
    elif command == 'remove':
        ops.remove(args.packages, readiness, on_event)
    elif command == 'purge':
        ops.purge(args.packages, readiness, on_event)
    elif command == 'reinstall':
        ops.reinstall(args.packages, readiness, on_event)
    elif command == 'upgrade':
        # full-upgrade always streams; --raw only hides the progress lines
        ops.upgrade(printer if on_event is not None else EventPrinter(quiet=True))
    elif command == 'update':
        ops.update(readiness, on_event)
    elif command == 'autoremove':
        ops.autoremove(readiness, on_event)
    elif command == 'fix-broken':
        ops.install_fix_broken(readiness, on_event)
    elif command == 'configure':
        ops.configure_all(readiness)
    elif command == 'hold':
        ops.hold(args.package)
    elif command == 'unhold':
        ops.unhold(args.package)
    elif command == 'installed':
        found = ops.installed(args.packages)
        for name in found:
            print(name)
        return EXIT_OK if found else EXIT_FAILED
    else:
        raise ValueError(f"Unknown command: {command}")

    printer.finish()
    if not args.quiet:
        print(colors.success("Done."))
    return EXIT_OK


def main(argv=None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format='%(name)s - %(levelname)s - %(message)s',
            stream=sys.stderr
        )

    colors.init(nocolor=args.nocolor)

    if not args.command:
        parser.print_help()
        return EXIT_FAILED

    command = ALIASES.get(args.command, args.command)
    printer = EventPrinter(quiet=args.quiet)
    ops = build_operations(args)

    try:
        return run_command(command, args, ops, printer)
    except LockTimeout as e:
        printer.finish()
        print(colors.error(f"Error: {e}"), file=sys.stderr)
        return EXIT_LOCK_TIMEOUT
    except CommandFailed as e:
        printer.finish()
        print(colors.error(f"Error: {e}"), file=sys.stderr)
        return EXIT_FAILED
    except SpawnError as e:
        print(colors.error(f"Error: {e}"), file=sys.stderr)
        return EXIT_FAILED
    except OutputReadError as e:
        printer.finish()
        # Nothing is following the child anymore
        e.process.terminate()
        print(colors.error(f"Error: {e}"), file=sys.stderr)
        return EXIT_FAILED
    except (Cancelled, KeyboardInterrupt):
        printer.finish()
        print(colors.warning("Interrupted"), file=sys.stderr)
        return EXIT_CANCELLED


if __name__ == '__main__':
    sys.exit(main())
