"""CLI command modules."""

from .scan import (
    cmd_scan,
)

__all__ = [
    'cmd_scan',
]
