"""Color output support for disposal diagnostics.

Color palette:
  - Red: errors
  - Orange: warnings
  - Blue: notices

Only the diagnostic stream (stderr) is colored. The scan result on stdout
stays plain so it can be diffed and parsed.
"""

import os
import sys

# ANSI color codes
_COLORS = {
    'reset': '\033[0m',
    'red': '\033[91m',
    'orange': '\033[93m',
    'blue': '\033[94m',
    'dim': '\033[2m',
}

# Global state
_colors_enabled = True


def init(nocolor: bool = False, stream=None):
    """Initialize color support.

    Args:
        nocolor: If True, disable colors unconditionally
        stream: Stream the colored text goes to (default: stderr)
    """
    global _colors_enabled

    stream = stream if stream is not None else sys.stderr
    if nocolor:
        _colors_enabled = False
    elif os.environ.get('NO_COLOR'):
        # Respect NO_COLOR environment variable (https://no-color.org/)
        _colors_enabled = False
    elif not hasattr(stream, 'isatty') or not stream.isatty():
        _colors_enabled = False
    else:
        _colors_enabled = True



def _wrap(text: str, color: str) -> str:
    """Wrap text with color codes if colors are enabled."""
    if not _colors_enabled:
        return text
    code = _COLORS.get(color, '')
    reset = _COLORS['reset']
    return f"{code}{text}{reset}"


def error(text: str) -> str:
    """Format text as error (red)."""
    return _wrap(text, 'red')


def warning(text: str) -> str:
    """Format text as warning (orange/yellow)."""
    return _wrap(text, 'orange')


def info(text: str) -> str:
    """Format text as info (blue)."""
    return _wrap(text, 'blue')


def dim(text: str) -> str:
    """Format text as dim/muted."""
    return _wrap(text, 'dim')
