"""
In-memory package universe

Holds every known package with its versions, dependency relations and
provides, plus the "current version" marker of each package. Relations use
Debian semantics (python-debian does the parsing and the version ordering).

The current version field is writable: a scan blanks it to
simulate a fresh install and restores it afterwards.
"""

import functools
from collections import defaultdict
from enum import Enum, IntEnum
from typing import Dict, Iterator, List, Optional, Union

from debian.deb822 import PkgRelation
from debian.debian_support import Version as DebianVersion


class Priority(IntEnum):
    """Debian priority tiers. Lower value means more essential."""
    REQUIRED = 1
    IMPORTANT = 2
    STANDARD = 3
    OPTIONAL = 4
    EXTRA = 5

    @classmethod
    def parse(cls, text: Optional[str], default: 'Priority' = None) -> 'Priority':
        """Map a Priority field value to a tier (unknown -> default)."""
        if default is None:
            default = cls.OPTIONAL
        if not text:
            return default
        return _PRIORITY_NAMES.get(text.strip().lower(), default)

    @property
    def label(self) -> str:
        return self.name.lower()


_PRIORITY_NAMES = {p.name.lower(): p for p in Priority}


class DepType(Enum):
    """Relation kinds, named after their control fields."""
    PRE_DEPENDS = "Pre-Depends"
    DEPENDS = "Depends"
    RECOMMENDS = "Recommends"
    SUGGESTS = "Suggests"
    CONFLICTS = "Conflicts"
    BREAKS = "Breaks"

    @property
    def is_negative(self) -> bool:
        return self in (DepType.CONFLICTS, DepType.BREAKS)

    @property
    def is_critical(self) -> bool:
        """Relations that must hold for a package to be installable."""
        return self in (DepType.PRE_DEPENDS, DepType.DEPENDS,
                        DepType.CONFLICTS, DepType.BREAKS)

    @property
    def field(self) -> str:
        """Lowercase field name as used by python-debian relations."""
        return self.value.lower()


# '<' and '>' are obsolete spellings of '<=' and '>='
_OPERATORS = {
    '<<': lambda c: c < 0,
    '<=': lambda c: c <= 0,
    '<': lambda c: c <= 0,
    '=': lambda c: c == 0,
    '>=': lambda c: c >= 0,
    '>': lambda c: c >= 0,
    '>>': lambda c: c > 0,
}


def version_compare(a: str, b: str) -> int:
    """Compare two Debian version strings (-1, 0, 1)."""
    va, vb = DebianVersion(a), DebianVersion(b)
    if va < vb:
        return -1
    if va > vb:
        return 1
    return 0


def check_constraint(version: str, op: str, target: str) -> bool:
    """True if ``version op target`` holds (e.g. "2.0" >= "1.0")."""
    test = _OPERATORS.get(op)
    if test is None:
        raise ValueError(f"Unknown relation operator: {op}")
    return test(version_compare(version, target))


class Provide:
    """A virtual name declared by a version."""

    __slots__ = ('name', 'version', 'owner')

    def __init__(self, name: str, owner: 'Version', version: Optional[str] = None):
        self.name = name
        self.owner = owner
        self.version = version

    def __repr__(self):
        if self.version:
            return f"<Provide {self.name} (= {self.version}) by {self.owner}>"
        return f"<Provide {self.name} by {self.owner}>"


class Dependency:
    """One alternative of a relation field.

    "a | b" in a Depends field gives two Dependency objects that share the
    same ``group`` list.
    """

    __slots__ = ('name', 'dep_type', 'parent_ver', 'op', 'version', 'group')

    def __init__(self, name: str, dep_type: DepType, parent_ver: 'Version',
                 op: Optional[str] = None, version: Optional[str] = None):
        self.name = name
        self.dep_type = dep_type
        self.parent_ver = parent_ver
        self.op = op
        self.version = version
        self.group: List['Dependency'] = [self]

    @property
    def parent_pkg(self) -> 'Package':
        return self.parent_ver.package

    @property
    def is_negative(self) -> bool:
        return self.dep_type.is_negative

    def _constraint_ok(self, version: str) -> bool:
        if self.op is None:
            return True
        return check_constraint(version, self.op, self.version)

    def satisfied_by_version(self, ver: 'Version') -> bool:
        """True if ``ver`` itself (not one of its provides) matches."""
        if ver is None or ver.package.name != self.name:
            return False
        return self._constraint_ok(ver.version)

    def satisfied_by_provide(self, prv: Provide) -> bool:
        """True if the provide matches. Versioned relations need a versioned provide."""
        if prv.name != self.name:
            return False
        if self.op is None:
            return True
        if prv.version is None:
            return False
        return self._constraint_ok(prv.version)

    def __str__(self):
        if self.op is None:
            return self.name
        return f"{self.name} ({self.op} {self.version})"

    def __repr__(self):
        return f"<{self.dep_type.value}: {self.parent_ver} -> {self}>"


RelationSpec = Union[None, str, List[List[dict]]]


def parse_relations(spec: RelationSpec) -> List[List[dict]]:
    """Parse a relation field with python-debian (already parsed input passes through)."""
    if not spec:
        return []
    if isinstance(spec, str):
        return PkgRelation.parse_relations(spec)
    return spec


class Version:
    """A concrete version of a package."""

    def __init__(self, package: 'Package', version: str,
                 priority: Priority = Priority.OPTIONAL, arch: str = 'all',
                 downloadable: bool = True):
        self.package = package
        self.version = version
        self.priority = priority
        self.arch = arch
        self.downloadable = downloadable
        # OR-groups of alternatives
        self.depends: List[List[Dependency]] = []
        self.provides: List[Provide] = []

    def add_relations(self, dep_type: DepType, spec: RelationSpec) -> List[List[Dependency]]:
        """Attach a relation field (string like "a (>= 1) | b, c" or python-debian groups)."""
        groups = []
        for alternatives in parse_relations(spec):
            group: List[Dependency] = []
            for rel in alternatives:
                op = ver = None
                if rel.get('version'):
                    op, ver = rel['version']
                dep = Dependency(rel['name'], dep_type, self, op, ver)
                dep.group = group
                group.append(dep)
            if group:
                groups.append(group)
        self.depends.extend(groups)
        self.package.universe._index_dependencies(groups)
        return groups

    def add_provides(self, spec: RelationSpec) -> List[Provide]:
        added = []
        for alternatives in parse_relations(spec):
            for rel in alternatives:
                version = rel['version'][1] if rel.get('version') else None
                prv = Provide(rel['name'], self, version)
                self.provides.append(prv)
                added.append(prv)
        self.package.universe._index_provides(added)
        return added

    def __str__(self):
        return f"{self.package.name}={self.version}"

    def __repr__(self):
        return f"<Version {self.package.name} {self.version} ({self.priority.label})>"


def _newest_first(a: Version, b: Version) -> int:
    return version_compare(b.version, a.version)


class Package:
    """A named package with its known versions and current version."""

    def __init__(self, universe: 'Universe', id: int, name: str):
        self.universe = universe
        self.id = id
        self.name = name
        self.versions: List[Version] = []
        self.current_ver: Optional[Version] = None

    def find_version(self, version: str) -> Optional[Version]:
        for ver in self.versions:
            if ver.version == version:
                return ver
        return None

    def add_version(self, version: str, priority: Union[Priority, str] = Priority.OPTIONAL,
                    depends: RelationSpec = None, pre_depends: RelationSpec = None,
                    recommends: RelationSpec = None, suggests: RelationSpec = None,
                    conflicts: RelationSpec = None, breaks: RelationSpec = None,
                    provides: RelationSpec = None, arch: str = 'all',
                    downloadable: bool = True, installed: bool = False) -> Version:
        """Add a version (or return the existing one with that version string).

        Args:
            version: Debian version string
            priority: Priority tier (or its field value)
            depends..breaks: Relation fields, "a (>= 1) | b, c" syntax
            provides: Provides field
            arch: Architecture of this version
            downloadable: True if some APT source offers it
            installed: Make it the package's current version

        Returns:
            The Version object
        """
        existing = self.find_version(version)
        if existing is not None:
            existing.downloadable = existing.downloadable or downloadable
            if installed:
                self.current_ver = existing
            return existing

        if priority is None or isinstance(priority, str):
            priority = Priority.parse(priority)
        ver = Version(self, version, priority, arch, downloadable)
        self.versions.append(ver)
        self.versions.sort(key=functools.cmp_to_key(_newest_first))

        for dep_type, spec in ((DepType.PRE_DEPENDS, pre_depends),
                               (DepType.DEPENDS, depends),
                               (DepType.RECOMMENDS, recommends),
                               (DepType.SUGGESTS, suggests),
                               (DepType.CONFLICTS, conflicts),
                               (DepType.BREAKS, breaks)):
            if spec:
                ver.add_relations(dep_type, spec)
        if provides:
            ver.add_provides(provides)

        if installed:
            self.current_ver = ver
        return ver

    def __repr__(self):
        current = self.current_ver.version if self.current_ver else None
        return f"<Package {self.id}:{self.name} current={current}>"


class Universe:
    """Every known package, in creation order, with reverse indexes."""

    def __init__(self):
        self.packages: List[Package] = []
        self._by_name: Dict[str, Package] = {}
        # target name -> relations naming it
        self._rev_depends: Dict[str, List[Dependency]] = defaultdict(list)
        # virtual name -> provides declaring it
        self._provides: Dict[str, List[Provide]] = defaultdict(list)

    def add_package(self, name: str) -> Package:
        pkg = self._by_name.get(name)
        if pkg is None:
            pkg = Package(self, len(self.packages), name)
            self.packages.append(pkg)
            self._by_name[name] = pkg
        return pkg

    def find(self, name: str) -> Optional[Package]:
        return self._by_name.get(name)

    def __iter__(self) -> Iterator[Package]:
        return iter(self.packages)

    def __len__(self) -> int:
        return len(self.packages)

    def __contains__(self, name: str) -> bool:
        return name in self._by_name

    def _index_dependencies(self, groups: List[List[Dependency]]) -> None:
        for group in groups:
            for dep in group:
                self._rev_depends[dep.name].append(dep)

    def _index_provides(self, provides: List[Provide]) -> None:
        for prv in provides:
            self._provides[prv.name].append(prv)

    def rev_depends(self, name: str) -> List[Dependency]:
        """Relations (from any version of any package) naming ``name``."""
        return self._rev_depends.get(name, [])

    def providers(self, name: str) -> List[Provide]:
        """Provides entries declaring the virtual name ``name``."""
        return self._provides.get(name, [])

    def satisfying_versions(self, dep: Dependency) -> Iterator[Version]:
        """Every version that matches ``dep``, real package first, then providers."""
        pkg = self._by_name.get(dep.name)
        if pkg is not None:
            for ver in pkg.versions:
                if dep.satisfied_by_version(ver):
                    yield ver
        for prv in self.providers(dep.name):
            if dep.satisfied_by_provide(prv):
                yield prv.owner

    def reverse_dependents(self, pkg: Package) -> List[Package]:
        """Packages owning a relation on ``pkg`` or on anything it provides."""
        names = {pkg.name}
        for ver in pkg.versions:
            names.update(prv.name for prv in ver.provides)
        seen = set()
        owners = []
        for name in names:
            for dep in self.rev_depends(name):
                owner = dep.parent_pkg
                if owner.id not in seen:
                    seen.add(owner.id)
                    owners.append(owner)
        return owners


class Policy:
    """Candidate version selection.

    The newest downloadable version wins, except that the current version is
    kept when it is newer than everything downloadable (no downgrades) or
    when nothing is downloadable at all.
    """

    def __init__(self, universe: Universe):
        self.universe = universe

    def candidate(self, pkg: Package) -> Optional[Version]:
        best = None
        for ver in pkg.versions:
            if ver.downloadable:
                best = ver
                break
        current = pkg.current_ver
        if current is not None:
            if best is None or version_compare(current.version, best.version) > 0:
                return current
        return best
