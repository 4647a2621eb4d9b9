"""Clean-slate scan command."""

import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ...core.config import Configuration


def cmd_scan(args, config: 'Configuration') -> int:
    """Handle scan command."""
    from ...core.config import KEY_QUIET, KEY_STATE_NO, KEY_STATE_YES
    from ...core.overrides import load_overrides
    from ...core.scan import Scanner
    from ...core.sources import CacheError, load_universe
    from ...core.universe import Policy
    from .. import colors

    try:
        universe = load_universe(config)
    except CacheError as e:
        print(colors.error(f"E: {e}"), file=sys.stderr)
        return 1

    policy = Policy(universe)
    overrides = load_overrides(
        universe,
        config.find_file(KEY_STATE_NO),
        config.find_file(KEY_STATE_YES),
        policy,
    )

    result = Scanner(universe, overrides, policy, config).run()

    for line in result.lines():
        print(line)

    if result.no_changes and config.find_int(KEY_QUIET) < 2:
        print(colors.info("no changes"), file=sys.stderr)

    return 0
