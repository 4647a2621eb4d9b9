"""
Override lists

Two line-oriented files steer the clean-slate simulation:
- the "no" list: packages that must not be installed
- the "yes" list: packages that must be installed, plus an optional
  ``Priority: <tier>`` line choosing the base set threshold

Blank lines and lines starting with '#' are ignored. Names that do not
resolve are reported and skipped, they never abort a scan.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

from .universe import Package, Policy, Priority, Universe, Version

logger = logging.getLogger(__name__)

# Exact lines accepted in the yes list (Debian's "standard" task is priority based)
PRIORITY_DIRECTIVES = {
    'Priority: required': Priority.REQUIRED,
    'Priority: important': Priority.IMPORTANT,
    'Priority: standard': Priority.STANDARD,
}

DEFAULT_REFERENCE_PRIORITY = Priority.REQUIRED


@dataclass
class Overrides:
    """Result of reading both lists."""
    excluded: List[Package] = field(default_factory=list)
    included: List[Tuple[Package, Version]] = field(default_factory=list)
    reference_priority: Priority = DEFAULT_REFERENCE_PRIORITY
    missing: List[str] = field(default_factory=list)

    def add_excluded(self, pkg: Package) -> None:
        if all(p is not pkg for p in self.excluded):
            self.excluded.append(pkg)

    def add_included(self, ver: Version) -> None:
        pkg = ver.package
        for i, (known, _) in enumerate(self.included):
            if known is pkg:
                self.included[i] = (pkg, ver)
                return
        self.included.append((pkg, ver))


def read_list(path: Union[str, Path]) -> Iterator[str]:
    """Yield meaningful lines of an override file (missing file reads as empty)."""
    path = Path(path)
    try:
        content = path.read_text(encoding='utf-8', errors='replace')
    except FileNotFoundError:
        logger.debug("Override list %s not found, treating as empty", path)
        return

    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith('#'):
            continue
        yield line


class OverrideLoader:
    """Resolve override list entries against a universe."""

    def __init__(self, universe: Universe, policy: Policy = None):
        self.universe = universe
        self.policy = policy or Policy(universe)

    def load(self, no_path: Union[str, Path], yes_path: Union[str, Path]) -> Overrides:
        overrides = Overrides()
        for line in read_list(no_path):
            self.add_excluded(overrides, line)

        directive_seen: Optional[str] = None
        for line in read_list(yes_path):
            priority = PRIORITY_DIRECTIVES.get(line)
            if priority is not None:
                if directive_seen is not None and directive_seen != line:
                    # several directives: the last one wins
                    logger.warning("%s overrides earlier %s in %s", line, directive_seen, yes_path)
                directive_seen = line
                overrides.reference_priority = priority
                continue
            self.add_included(overrides, line)

        logger.debug("Overrides: %d excluded, %d included, reference priority %s",
                     len(overrides.excluded), len(overrides.included),
                     overrides.reference_priority.label)
        return overrides

    def resolve_packages(self, name: str) -> List[Package]:
        """A real package by name, else every provider of the virtual name."""
        pkg = self.universe.find(name)
        if pkg is not None and pkg.versions:
            return [pkg]
        providers = []
        for prv in self.universe.providers(name):
            owner = prv.owner.package
            if all(p is not owner for p in providers):
                providers.append(owner)
        return providers

    def add_excluded(self, overrides: Overrides, name: str) -> None:
        packages = self.resolve_packages(name)
        if not packages:
            logger.warning("Unable to locate package %s", name)
            overrides.missing.append(name)
            return
        for pkg in packages:
            overrides.add_excluded(pkg)

    def resolve_version(self, spec: str) -> Optional[Version]:
        """Resolve ``name`` (candidate) or ``name=version`` to a Version, logging why not."""
        name, _, wanted = spec.partition('=')
        name = name.strip()
        wanted = wanted.strip()

        packages = self.resolve_packages(name)
        if not packages:
            logger.warning("Unable to locate package %s", name)
            return None
        if len(packages) > 1:
            logger.warning("Package %s is a virtual package provided by: %s; select one explicitly",
                           name, ', '.join(p.name for p in packages))
            return None

        pkg = packages[0]
        if wanted:
            ver = pkg.find_version(wanted)
            if ver is None:
                logger.warning("Version '%s' for '%s' was not found", wanted, pkg.name)
            return ver

        ver = self.policy.candidate(pkg)
        if ver is None:
            logger.warning("Package %s has no installation candidate", pkg.name)
        return ver

    def add_included(self, overrides: Overrides, spec: str) -> None:
        ver = self.resolve_version(spec)
        if ver is None:
            overrides.missing.append(spec)
            return
        overrides.add_included(ver)


def load_overrides(universe: Universe, no_path, yes_path, policy: Policy = None) -> Overrides:
    """Read the no and yes lists against ``universe``."""
    return OverrideLoader(universe, policy).load(no_path, yes_path)
