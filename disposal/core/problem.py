"""
Problem resolver: the conflict-resolution half of the resolution engine

Given a DepCache with broken packages, tries to reach a consistent plan:
install a missing alternative when one is available, otherwise drop the
side of the problem that matters least. Packages flagged with ``protect()``
are never dropped; when nothing else can give, they stay broken and the
caller reports it.
"""

import logging
from typing import List, Set

from .depcache import DepCache, format_group
from .universe import Dependency, Package, Priority

logger = logging.getLogger(__name__)

# Resolver flags
PROTECTED = 1 << 0
TO_REMOVE = 1 << 1

# Passes over the broken set before giving up
MAX_PASSES = 10

# Same ordering as the priority tiers, optional/extra count against a package
PRIORITY_SCORES = {
    Priority.REQUIRED: 3,
    Priority.IMPORTANT: 2,
    Priority.STANDARD: 1,
    Priority.OPTIONAL: -1,
    Priority.EXTRA: -2,
}
PROTECTED_BONUS = 10000


class ProblemResolver:
    """Priority-ordered resolver over a DepCache."""

    def __init__(self, cache: DepCache):
        self.cache = cache
        self.universe = cache.universe
        self._flags: List[int] = [0] * len(self.universe)
        self._scores: List[int] = [0] * len(self.universe)
        self._unmarked: Set[int] = set()

    def protect(self, pkg: Package) -> None:
        """Never change this package's plan to fix someone else."""
        self._flags[pkg.id] |= PROTECTED

    def remove(self, pkg: Package) -> None:
        """Prefer removal over keeping when this package has to give."""
        self._flags[pkg.id] |= TO_REMOVE

    def is_protected(self, pkg: Package) -> bool:
        return bool(self._flags[pkg.id] & PROTECTED) or self.cache[pkg].protected

    def score(self, pkg: Package) -> int:
        return self._scores[pkg.id]

    def make_scores(self) -> None:
        """Score packages: priority tier, demand from planned packages, protection."""
        scores = [0] * len(self.universe)
        for pkg in self.universe:
            cand = self.cache[pkg].candidate_ver
            if cand is not None:
                scores[pkg.id] += PRIORITY_SCORES.get(cand.priority, 0)

        for pkg in self.universe:
            ver = self.cache[pkg].install_ver
            if ver is None:
                continue
            for group in ver.depends:
                head = group[0]
                if head.is_negative or not self.cache.is_important_dep(head):
                    continue
                for dep in group:
                    for target_ver in self.universe.satisfying_versions(dep):
                        if self.cache[target_ver.package].candidate_ver is target_ver:
                            scores[target_ver.package.id] += 1

        for pkg in self.universe:
            if self.is_protected(pkg):
                scores[pkg.id] += PROTECTED_BONUS
        self._scores = scores

    def resolve(self) -> bool:
        """Run one resolution pass over the whole cache.

        Returns:
            True if no package is left broken
        """
        self.make_scores()

        for pass_no in range(1, MAX_PASSES + 1):
            broken = [pkg for pkg in self.universe if self.cache[pkg].inst_broken]
            if not broken:
                break
            broken.sort(key=lambda p: -self._scores[p.id])
            logger.debug("Pass %d: %d broken package(s)", pass_no, len(broken))

            changed = False
            for pkg in broken:
                if self.cache[pkg].inst_broken and self._fix(pkg):
                    changed = True
            if not changed:
                break

        remaining = [pkg for pkg in self.universe if self.cache[pkg].inst_broken]
        for pkg in remaining:
            for group in self.cache.broken_groups(pkg):
                logger.debug("Still broken: %s %s %s",
                             self.cache[pkg].install_ver, group[0].dep_type.value, format_group(group))
        return not remaining

    def _fix(self, pkg: Package) -> bool:
        changed = False
        for group in self.cache.broken_groups(pkg):
            if self.cache[pkg].install_ver is None:
                break
            if self.cache.group_satisfied(group):
                continue
            if group[0].is_negative:
                fixed = self._fix_conflict(pkg, group)
            else:
                fixed = self._fix_missing(pkg, group)
            changed = changed or fixed
        return changed

    def _installable(self, dep: Dependency) -> List[Package]:
        """Packages whose candidate satisfies ``dep`` and that we may still install."""
        targets = []
        for ver in self.universe.satisfying_versions(dep):
            target = ver.package
            state = self.cache[target]
            if state.candidate_ver is not ver or state.protected:
                continue
            if target.id in self._unmarked or self._flags[target.id] & TO_REMOVE:
                continue
            if target not in targets:
                targets.append(target)
        return targets

    def _fix_missing(self, pkg: Package, group: List[Dependency]) -> bool:
        for dep in group:
            for target in self._installable(dep):
                if (self.cache.mark_install(target, auto_inst=True, from_user=False)
                        and self.cache.group_satisfied(group)):
                    logger.debug("Fixing %s by installing %s", pkg.name, target.name)
                    return True
        return self._give_up(pkg, group)

    def _fix_conflict(self, pkg: Package, group: List[Dependency]) -> bool:
        changed = False
        for dep in group:
            for ver in self.universe.satisfying_versions(dep):
                other = ver.package
                if other is pkg or self.cache[other].install_ver is not ver:
                    continue
                if not self.is_protected(other) and (
                        self.is_protected(pkg) or self.score(other) < self.score(pkg)):
                    logger.debug("Dropping %s, %s of %s", other.name, dep.dep_type.value, pkg.name)
                    self._unmark(other)
                    # keeping the installed version may not end the conflict
                    if self.cache[other].install_ver is ver:
                        self.cache.mark_delete(other, from_user=False)
                    changed = True
                else:
                    return self._give_up(pkg, group) or changed
        return changed

    def _give_up(self, pkg: Package, group: List[Dependency]) -> bool:
        if self.is_protected(pkg):
            logger.debug("%s is protected, cannot fix %s %s",
                         pkg.name, group[0].dep_type.value, format_group(group))
            return False
        logger.debug("Dropping %s, cannot satisfy %s %s",
                     pkg.name, group[0].dep_type.value, format_group(group))
        self._unmark(pkg)
        return True

    def _unmark(self, pkg: Package) -> None:
        self._unmarked.add(pkg.id)
        if self._flags[pkg.id] & TO_REMOVE or pkg.current_ver is None:
            self.cache.mark_delete(pkg, from_user=False)
            return
        self.cache.mark_keep(pkg, from_user=False)
        if self.cache[pkg].inst_broken:
            self.cache.mark_delete(pkg, from_user=False)
