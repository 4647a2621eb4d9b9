"""
Main CLI entry point for disposal

    disposal scan / disposal s

Prints one line per package that a clean-slate reinstall would change:
"name+" for installs, "name-" for removals, indented by two spaces when
the change is only a side effect of another change.
"""

import argparse
import logging
import sys

from .. import __version__
from ..core.config import (
    ConfigError,
    Configuration,
    KEY_DEBUG_AUTOINSTALL,
    KEY_DEBUG_AUTOREMOVE,
    KEY_DEBUG_MARKER,
    KEY_DEBUG_RESOLVER,
    KEY_INSTALL_RECOMMENDS,
    KEY_INSTALL_SUGGESTS,
    KEY_QUIET,
    load_config,
)

# Engine debug switches: argparse dest, config key, logger enabled by it
DEBUG_SWITCHES = (
    ('debug_marker', KEY_DEBUG_MARKER, 'disposal.core.depcache.marker'),
    ('debug_autoinstall', KEY_DEBUG_AUTOINSTALL, 'disposal.core.depcache.autoinstall'),
    ('debug_problemresolver', KEY_DEBUG_RESOLVER, 'disposal.core.problem'),
    ('debug_autoremove', KEY_DEBUG_AUTOREMOVE, 'disposal.core.depcache.autoremove'),
)

# Stays at warning level under a single -q
SUMMARY_LOGGER = 'disposal.core.scan.summary'


class DiagnosticFormatter(logging.Formatter):
    """APT-like prefixes on stderr: "E: ", "W: ", plain logger names below that."""

    def format(self, record: logging.LogRecord) -> str:
        from . import colors

        message = record.getMessage()
        if record.levelno >= logging.ERROR:
            return colors.error(f"E: {message}")
        if record.levelno >= logging.WARNING:
            return colors.warning(f"W: {message}")
        return colors.dim(f"{record.name}: {message}")


def create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser."""

    parser = argparse.ArgumentParser(
        prog='disposal',
        description='Compare a clean-slate reinstall with the installed system',
        epilog='Use "disposal <command> --help" for command-specific help.'
    )

    parser.add_argument(
        '--version', '-V',
        action='version',
        version=f'disposal {__version__}'
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Verbose output'
    )

    parser.add_argument(
        '--quiet', '-q', '--silent',
        dest='quiet',
        action='count',
        default=0,
        help='Less diagnostics (-qq also hides the broken count and the "no changes" notice)'
    )

    parser.add_argument(
        '--nocolor',
        action='store_true',
        help='Disable colored diagnostics'
    )

    parser.add_argument(
        '--config-file', '-c',
        dest='config_file',
        action='append',
        default=[],
        metavar='FILE',
        help='Read this configuration file (key=value lines)'
    )

    parser.add_argument(
        '--option', '-o',
        dest='option',
        action='append',
        default=[],
        metavar='KEY=VALUE',
        help='Set an arbitrary configuration option, e.g. -o Dir::State::status=./status'
    )

    subparsers = parser.add_subparsers(
        dest='command',
        title='commands',
        metavar='<command>'
    )

    # =========================================================================
    # scan / s
    # =========================================================================
    scan_parser = subparsers.add_parser(
        'scan', aliases=['s'],
        help='List packages a clean-slate reinstall would change'
    )
    scan_parser.add_argument(
        '--debug-marker', '-m',
        action='store_true',
        help='Trace mark requests (Debug::pkgDepCache::Marker)'
    )
    scan_parser.add_argument(
        '--debug-autoinstall', '-i',
        action='store_true',
        help='Trace dependency auto-install (Debug::pkgDepCache::AutoInstall)'
    )
    scan_parser.add_argument(
        '--debug-problemresolver', '-p',
        action='store_true',
        help='Trace conflict resolution (Debug::pkgProblemResolver)'
    )
    scan_parser.add_argument(
        '--debug-autoremove', '-r',
        action='store_true',
        help='Trace garbage detection (Debug::pkgAutoRemove)'
    )
    scan_parser.add_argument(
        '--install-recommends',
        dest='install_recommends',
        action='store_true',
        default=None,
        help='Treat Recommends as important (APT::Install-Recommends)'
    )
    scan_parser.add_argument(
        '--no-install-recommends',
        dest='install_recommends',
        action='store_false',
        help='Ignore Recommends'
    )
    scan_parser.add_argument(
        '--install-suggests',
        dest='install_suggests',
        action='store_true',
        default=None,
        help='Treat Suggests as important (APT::Install-Suggests)'
    )
    scan_parser.add_argument(
        '--no-install-suggests',
        dest='install_suggests',
        action='store_false',
        help='Ignore Suggests'
    )

    return parser


def build_config(args) -> Configuration:
    """Layer config files, -o options and command flags.

    Raises:
        ConfigError: On unreadable files or malformed options
    """
    config = load_config(config_files=args.config_file, options=args.option)

    for dest, key, _ in DEBUG_SWITCHES:
        if getattr(args, dest, False):
            config.set(key, True)

    install_recommends = getattr(args, 'install_recommends', None)
    if install_recommends is not None:
        config.set(KEY_INSTALL_RECOMMENDS, install_recommends)

    install_suggests = getattr(args, 'install_suggests', None)
    if install_suggests is not None:
        config.set(KEY_INSTALL_SUGGESTS, install_suggests)

    if args.quiet:
        config.set(KEY_QUIET, args.quiet)

    return config


def setup_logging(config: Configuration, verbose: bool = False):
    """Send diagnostics to stderr at the level asked for."""
    quiet = config.find_int(KEY_QUIET)
    if verbose:
        level = logging.DEBUG
    elif quiet > 0:
        level = logging.ERROR
    else:
        level = logging.WARNING

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(DiagnosticFormatter())
    logging.basicConfig(level=level, handlers=[handler], force=True)
    summary_level = logging.WARNING if quiet == 1 and not verbose else logging.NOTSET
    logging.getLogger(SUMMARY_LOGGER).setLevel(summary_level)

    for _, key, logger_name in DEBUG_SWITCHES:
        if config.find_bool(key):
            logging.getLogger(logger_name).setLevel(logging.DEBUG)


def main(argv=None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    # Initialize color support
    from . import colors
    colors.init(nocolor=args.nocolor)

    if not args.command:
        print(colors.error("E: No operation specified"), file=sys.stderr)
        parser.print_usage(sys.stderr)
        return 1

    try:
        config = build_config(args)
    except ConfigError as e:
        print(colors.error(f"E: {e}"), file=sys.stderr)
        return 1

    setup_logging(config, verbose=args.verbose)

    try:
        if args.command in ('scan', 's'):
            from .commands import cmd_scan
            return cmd_scan(args, config)

        print(colors.error(f"E: Unknown command {args.command}"), file=sys.stderr)
        return 1

    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130

    except Exception as e:
        if args.verbose:
            import traceback
            traceback.print_exc()
        else:
            print(colors.error(f"Error: {e}"), file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
