"""
Clean-slate scan

Answers "which packages would differ if this machine were reinstalled from
nothing, honoring the priority threshold and the no/yes lists?".

The scan reuses one universe for both worlds:
    1. Snapshot current and candidate versions
    2. Blank every current version and plan a fresh install
       (base set by priority, exclusions, inclusions, dependency closure,
       one resolver pass, then garbage removal)
    3. Restore the real current versions and recompute derived state
    4. Diff plan against reality, classifying each change as notable or
       incidental by looking one hop up the reverse dependencies

Between steps 2 and 3 every current version describes the simulation, not
the machine.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional

from .config import Configuration
from .depcache import DepCache, Mode
from .overrides import Overrides
from .problem import ProblemResolver
from .universe import Dependency, Package, Policy, Priority, Universe, Version

logger = logging.getLogger(__name__)
summary_log = logger.getChild('summary')


@dataclass
class ScanInfo:
    """What we need to remember about a package for the length of a scan."""
    orig_cur: Optional[Version] = None
    orig_cand: Optional[Version] = None
    in_no: bool = False
    in_yes: bool = False


class ChangeKind(Enum):
    INSTALL = '+'
    REMOVE = '-'


@dataclass
class Change:
    """One package that differs between the plan and the machine."""
    package: Package
    kind: ChangeKind
    notable: bool

    def format(self) -> str:
        indent = '' if self.notable else '  '
        return f"{indent}{self.package.name}{self.kind.value}"


@dataclass
class ScanResult:
    changes: List[Change] = field(default_factory=list)
    broken_count: int = 0
    reference_priority: Priority = Priority.REQUIRED

    @property
    def no_changes(self) -> bool:
        return not self.changes

    def lines(self) -> List[str]:
        return [change.format() for change in self.changes]


def reverse_dependencies(universe: Universe, pkg: Package,
                         ver: Optional[Version]) -> Iterator[Dependency]:
    """Relations satisfied by ``ver``, directly or through one of its provides."""
    if ver is None:
        return
    for dep in universe.rev_depends(pkg.name):
        if dep.satisfied_by_version(ver):
            yield dep
    for prv in ver.provides:
        for dep in universe.rev_depends(prv.name):
            if dep.satisfied_by_provide(prv):
                yield dep


class Scanner:
    """One clean-slate scan over a universe. Not reusable."""

    def __init__(self, universe: Universe, overrides: Overrides,
                 policy: Policy = None, config: Configuration = None):
        self.universe = universe
        self.overrides = overrides
        self.policy = policy or Policy(universe)
        self.config = config or Configuration()
        self.info: List[ScanInfo] = []
        self.cache: Optional[DepCache] = None
        self.broken_count = 0

    def run(self) -> ScanResult:
        self._snapshot()
        try:
            self._simulate()
        finally:
            self._restore()
        self._reconcile()
        return ScanResult(
            changes=self._diff(),
            broken_count=self.broken_count,
            reference_priority=self.overrides.reference_priority,
        )

    # =========================================================================
    # Simulation
    # =========================================================================

    def _snapshot(self) -> None:
        self.info = [ScanInfo(orig_cur=pkg.current_ver, orig_cand=self.policy.candidate(pkg))
                     for pkg in self.universe]

    def _simulate(self) -> None:
        universe = self.universe

        # pretend nothing is installed
        for pkg in universe:
            pkg.current_ver = None

        self.cache = cache = DepCache(universe, self.policy, self.config)
        fix = ProblemResolver(cache)
        auto_install: List[Package] = []
        reference = self.overrides.reference_priority

        with cache.action_group(resolver=fix):
            # blanking changes what the policy picks, put the real candidates back
            for pkg in universe:
                orig_cand = self.info[pkg.id].orig_cand
                if orig_cand is not None:
                    cache.set_candidate_version(orig_cand)

            # shallow-install the base set
            for pkg in universe:
                cand = cache[pkg].candidate_ver
                if cand is not None and cand.priority <= reference:
                    fix.protect(pkg)
                    cache.mark_install(pkg, auto_inst=False)
                    auto_install.append(pkg)

            for pkg in self.overrides.excluded:
                self.info[pkg.id].in_no = True
                fix.protect(pkg)
                fix.remove(pkg)
                cache.mark_delete(pkg)
                cache.mark_protected(pkg)

            # shallow-install the yes list
            for pkg, ver in self.overrides.included:
                if self.info[pkg.id].in_no:
                    logger.warning("%s is in both lists, keeping it excluded", pkg.name)
                    continue
                self.info[pkg.id].in_yes = True
                fix.protect(pkg)
                cache.set_candidate_version(ver)
                cache.mark_install(pkg, auto_inst=False)
                if pkg not in auto_install:
                    auto_install.append(pkg)

            # install everyone's dependencies
            for pkg in auto_install:
                state = cache[pkg]
                if state.inst_broken or state.inst_policy_broken:
                    cache.mark_install(pkg)

        self.broken_count = cache.broken_count
        if self.broken_count:
            summary_log.warning("%d broken", self.broken_count)

        # the resolver may drop a package we marked recursively without
        # dropping what was pulled in for it
        with cache.action_group():
            for pkg in universe:
                if cache[pkg].garbage:
                    cache.mark_delete(pkg, from_user=False)

    # =========================================================================
    # Reconciliation
    # =========================================================================

    def _restore(self) -> None:
        for pkg in self.universe:
            pkg.current_ver = self.info[pkg.id].orig_cur

    def _reconcile(self) -> None:
        cache = self.cache
        for pkg in self.universe:
            state = cache[pkg]
            if state.install_ver is pkg.current_ver:
                state.mode = Mode.KEEP
            elif state.install_ver is None and pkg.current_ver is not None:
                state.mode = Mode.DELETE
            state.update(pkg)
        cache.update()

    # =========================================================================
    # Diff
    # =========================================================================

    def notable_new_install(self, pkg: Package) -> bool:
        """Requested, or needed by something that is not itself new."""
        if self.info[pkg.id].in_yes:
            return True
        cache = self.cache
        for dep in reverse_dependencies(self.universe, pkg, cache[pkg].install_ver):
            if dep.is_negative or not cache.is_important_dep(dep):
                continue
            parent = cache[dep.parent_pkg]
            if parent.new_install():
                continue
            if dep.parent_ver is not parent.install_ver:
                continue
            return True
        return False

    def notable_remove(self, pkg: Package) -> bool:
        """Requested, or not needed by anything else being removed."""
        if self.info[pkg.id].in_no:
            return True
        cache = self.cache
        for dep in reverse_dependencies(self.universe, pkg, pkg.current_ver):
            if dep.is_negative or not cache.is_important_dep(dep):
                continue
            if not cache[dep.parent_pkg].delete():
                continue
            if dep.parent_ver is not dep.parent_pkg.current_ver:
                continue
            return False
        return True

    def _diff(self) -> List[Change]:
        changes = []
        for pkg in self.universe:
            state = self.cache[pkg]
            if state.new_install():
                changes.append(Change(pkg, ChangeKind.INSTALL, self.notable_new_install(pkg)))
            elif state.delete():
                changes.append(Change(pkg, ChangeKind.REMOVE, self.notable_remove(pkg)))
        return changes


def scan(universe: Universe, overrides: Overrides, policy: Policy = None,
         config: Configuration = None) -> ScanResult:
    """Run one scan and return its result."""
    return Scanner(universe, overrides, policy, config).run()
