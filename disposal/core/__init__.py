"""Core modules for disposal"""

from .compression import decompress
from .config import Configuration
from .universe import Universe, Package, Version, Priority

__all__ = ['decompress', 'Configuration', 'Universe', 'Package', 'Version', 'Priority']
