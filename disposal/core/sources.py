"""
Universe loading from the dpkg and APT state on disk

Available versions come from the ``*_Packages`` indexes APT keeps in its
lists directory (plain or compressed), installed versions from the dpkg
status file. Both are deb822 files, parsed with python-debian.

Only the native architecture and ``all`` are loaded.
"""

import logging
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Union

from debian.deb822 import Packages

from .compression import SUPPORTED_SUFFIXES, decompress
from .config import Configuration, KEY_APT_LISTS, KEY_ARCHITECTURE, KEY_DPKG_STATUS
from .universe import Universe, Version

logger = logging.getLogger(__name__)

# dpkg states that give a package a current version
INSTALLED_STATES = (
    'installed',
    'half-configured',
    'unpacked',
    'half-installed',
    'triggers-awaited',
    'triggers-pending',
)

INDEX_SUFFIX = '_Packages'


class CacheError(Exception):
    """Raised when the package universe cannot be built."""


def iter_paragraphs(path: Union[str, Path]) -> Iterator[Packages]:
    """Yield the deb822 paragraphs of a (possibly compressed) index file."""
    text = decompress(path)
    return Packages.iter_paragraphs(text.splitlines(), use_apt_pkg=False)


def find_package_lists(lists_dir: Union[str, Path]) -> List[Path]:
    """Packages indexes in an APT lists directory, sorted by file name."""
    lists_dir = Path(lists_dir)
    if not lists_dir.is_dir():
        logger.debug("Lists directory %s does not exist", lists_dir)
        return []

    found = []
    for path in sorted(lists_dir.iterdir()):
        if not path.is_file():
            continue
        name = path.name
        for suffix in SUPPORTED_SUFFIXES:
            if suffix and not name.endswith(suffix):
                continue
            stem = name[:-len(suffix)] if suffix else name
            if stem.endswith(INDEX_SUFFIX):
                found.append(path)
                break
        else:
            if name.endswith(INDEX_SUFFIX + '.lz4'):
                logger.warning("Skipping %s: lz4 compressed lists are not supported", path)
    return found


def is_installed(status: Optional[str]) -> bool:
    """True for a dpkg Status field like "install ok installed"."""
    if not status:
        return False
    words = status.split()
    return len(words) == 3 and words[2] in INSTALLED_STATES


class UniverseLoader:
    """Builds a Universe from deb822 paragraphs."""

    def __init__(self, architectures: Iterable[str]):
        self.architectures = set(architectures) | {'all'}
        self.skipped_foreign = 0

    def add_paragraph(self, universe: Universe, para, installed: bool = False,
                      downloadable: bool = True) -> Optional[Version]:
        name = para.get('Package')
        version = para.get('Version')
        if not name or not version:
            return None

        arch = para.get('Architecture', 'all')
        if arch not in self.architectures:
            self.skipped_foreign += 1
            return None

        rels = para.relations
        pkg = universe.add_package(name)
        return pkg.add_version(
            version,
            priority=para.get('Priority'),
            pre_depends=rels['pre-depends'],
            depends=rels['depends'],
            recommends=rels['recommends'],
            suggests=rels['suggests'],
            conflicts=rels['conflicts'],
            breaks=rels['breaks'],
            provides=rels['provides'],
            arch=arch,
            downloadable=downloadable,
            installed=installed,
        )

    def load_lists(self, universe: Universe, paths: Iterable[Path]) -> int:
        count = 0
        for path in paths:
            try:
                for para in iter_paragraphs(path):
                    if self.add_paragraph(universe, para) is not None:
                        count += 1
            except (OSError, ValueError) as e:
                logger.warning("Skipping %s: %s", path, e)
        return count

    def load_status(self, universe: Universe, status_path: Path) -> int:
        """Read the dpkg status file.

        Raises:
            CacheError: If the file is missing or unreadable
        """
        try:
            paragraphs = list(iter_paragraphs(status_path))
        except (OSError, ValueError) as e:
            raise CacheError(f"Cannot read dpkg status file {status_path}: {e}")

        count = 0
        for para in paragraphs:
            if not is_installed(para.get('Status')):
                continue
            if self.add_paragraph(universe, para, installed=True, downloadable=False) is not None:
                count += 1
        return count

    def load(self, status_path: Union[str, Path], lists_dir: Union[str, Path]) -> Universe:
        universe = Universe()
        lists = find_package_lists(lists_dir)
        available = self.load_lists(universe, lists)
        installed = self.load_status(universe, Path(status_path))

        if self.skipped_foreign:
            logger.debug("Ignored %d entries of foreign architectures", self.skipped_foreign)
        logger.info("Read %d available versions from %d lists, %d installed packages",
                    available, len(lists), installed)
        return universe


def load_universe(config: Configuration) -> Universe:
    """Build the universe from the paths and architecture in ``config``."""
    loader = UniverseLoader([config.find(KEY_ARCHITECTURE)])
    return loader.load(config.find_file(KEY_DPKG_STATUS), config.find_file(KEY_APT_LISTS))
