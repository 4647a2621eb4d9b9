"""
Dependency cache: the marking half of the resolution engine

Keeps one StateCache per package describing what the plan would do with it
(keep, install which version, delete), and answers "is this plan consistent"
questions (broken packages, garbage). Mark requests can be grouped with
``action_group()`` so that a whole batch is followed by exactly one conflict
resolution pass.

Nothing here touches the real system.
"""

import logging
from enum import Enum, IntEnum
from typing import List, Optional

from .config import (
    Configuration,
    KEY_INSTALL_RECOMMENDS,
    KEY_INSTALL_SUGGESTS,
    KEY_RECOMMENDS_IMPORTANT,
    KEY_SUGGESTS_IMPORTANT,
)
from .universe import Dependency, DepType, Package, Policy, Universe, Version, version_compare

logger = logging.getLogger(__name__)
# Enabled by Debug::pkgDepCache::Marker / AutoInstall and Debug::pkgAutoRemove
marker_log = logger.getChild('marker')
autoinstall_log = logger.getChild('autoinstall')
autoremove_log = logger.getChild('autoremove')

# Longest auto-install chain followed
MAX_AUTOINSTALL_DEPTH = 3000


class Mode(Enum):
    """What the plan does with a package."""
    KEEP = "keep"
    INSTALL = "install"
    DELETE = "delete"


class Status(IntEnum):
    """Candidate compared to current version."""
    DOWNGRADE = -1
    SAME = 0
    UPGRADE = 1
    NEW_INSTALL = 2


class StateCache:
    """Per-package plan state."""

    __slots__ = ('candidate_ver', 'install_ver', 'mode', 'status', 'auto',
                 'protected', 'garbage', 'marked', 'inst_broken',
                 'inst_policy_broken', 'now_broken')

    def __init__(self):
        self.candidate_ver: Optional[Version] = None
        self.install_ver: Optional[Version] = None
        self.mode = Mode.KEEP
        self.status = Status.NEW_INSTALL
        self.auto = False
        self.protected = False
        self.garbage = False
        self.marked = False
        self.inst_broken = False
        self.inst_policy_broken = False
        self.now_broken = False

    def update(self, pkg: Package) -> None:
        """Recompute ``status`` from the package's current version."""
        current = pkg.current_ver
        if current is None:
            self.status = Status.NEW_INSTALL
        elif self.candidate_ver is None or self.candidate_ver is current:
            self.status = Status.SAME
        else:
            self.status = Status(version_compare(self.candidate_ver.version, current.version))

    def new_install(self) -> bool:
        return self.status is Status.NEW_INSTALL and self.mode is Mode.INSTALL

    def install(self) -> bool:
        return self.mode is Mode.INSTALL

    def delete(self) -> bool:
        return self.mode is Mode.DELETE

    def keep(self) -> bool:
        return self.mode is Mode.KEEP

    def __repr__(self):
        inst = self.install_ver.version if self.install_ver else None
        return f"<StateCache {self.mode.value} install={inst} broken={self.inst_broken}>"


class ActionGroup:
    """A batch of mark requests.

    Releasing the outermost group runs its resolver (if any) once, then
    recomputes garbage. A nested group's resolver never runs, and nothing
    runs when the block raises.
    """

    def __init__(self, cache: 'DepCache', resolver=None):
        self.cache = cache
        self.resolver = resolver
        self.resolved: Optional[bool] = None

    def __enter__(self) -> 'ActionGroup':
        self.cache._group_level += 1
        return self

    def __exit__(self, exc_type, exc, tb):
        self.cache._group_level -= 1
        if exc_type is not None or self.cache._group_level > 0:
            return False
        if self.resolver is not None:
            self.resolved = self.resolver.resolve()
        self.cache.mark_and_sweep()
        return False


def format_group(group: List[Dependency]) -> str:
    return ' | '.join(str(dep) for dep in group)


class DepCache:
    """Plan state for every package of a universe."""

    def __init__(self, universe: Universe, policy: Policy = None,
                 config: Configuration = None,
                 install_recommends: bool = None, install_suggests: bool = None):
        """Build the cache from the universe's current versions.

        Args:
            universe: Package universe
            policy: Candidate selection (default: Policy(universe))
            config: Configuration for recommends/suggests handling
            install_recommends: Override APT::Install-Recommends
            install_suggests: Override APT::Install-Suggests
        """
        config = config or Configuration()
        self.universe = universe
        self.policy = policy or Policy(universe)
        self.install_recommends = (config.find_bool(KEY_INSTALL_RECOMMENDS, True)
                                   if install_recommends is None else install_recommends)
        self.install_suggests = (config.find_bool(KEY_INSTALL_SUGGESTS, False)
                                 if install_suggests is None else install_suggests)
        self.recommends_important = config.find_bool(KEY_RECOMMENDS_IMPORTANT, True)
        self.suggests_important = config.find_bool(KEY_SUGGESTS_IMPORTANT, True)
        self._states: List[StateCache] = []
        self._group_level = 0
        self.init()

    def init(self) -> None:
        """Reset every package to "keep what is installed"."""
        self._states = [StateCache() for _ in self.universe.packages]
        for pkg in self.universe:
            state = self._states[pkg.id]
            state.candidate_ver = self.policy.candidate(pkg)
            state.install_ver = pkg.current_ver
        self.update()

    def __getitem__(self, pkg: Package) -> StateCache:
        return self._states[pkg.id]

    # =========================================================================
    # Relation checks
    # =========================================================================

    def is_important_dep(self, dep: Dependency) -> bool:
        """Relations the marker acts on: critical ones, plus recommends/suggests when enabled."""
        if dep.dep_type.is_critical:
            return True
        if dep.dep_type is DepType.RECOMMENDS:
            return self.install_recommends
        if dep.dep_type is DepType.SUGGESTS:
            return self.install_suggests
        return False

    def _planned(self, ver: Version) -> bool:
        return self._states[ver.package.id].install_ver is ver

    @staticmethod
    def _installed_now(ver: Version) -> bool:
        return ver.package.current_ver is ver

    def _dep_matched(self, dep: Dependency, now: bool = False) -> bool:
        check = self._installed_now if now else self._planned
        for ver in self.universe.satisfying_versions(dep):
            # a package never conflicts with itself
            if dep.is_negative and ver.package is dep.parent_pkg:
                continue
            if check(ver):
                return True
        return False

    def group_satisfied(self, group: List[Dependency], now: bool = False) -> bool:
        """True if the plan (or the current state with now=True) satisfies the group."""
        if group[0].is_negative:
            return not any(self._dep_matched(dep, now) for dep in group)
        return any(self._dep_matched(dep, now) for dep in group)

    def broken_groups(self, pkg: Package, now: bool = False) -> List[List[Dependency]]:
        """Unsatisfied critical relation groups of the planned (or current) version."""
        ver = pkg.current_ver if now else self._states[pkg.id].install_ver
        if ver is None:
            return []
        return [group for group in ver.depends
                if group[0].dep_type.is_critical and not self.group_satisfied(group, now)]

    def policy_broken_groups(self, pkg: Package) -> List[List[Dependency]]:
        """Unsatisfied recommends/suggests the configuration asks to honour."""
        ver = self._states[pkg.id].install_ver
        if ver is None:
            return []
        return [group for group in ver.depends
                if not group[0].dep_type.is_critical
                and self.is_important_dep(group[0])
                and not self.group_satisfied(group)]

    # =========================================================================
    # Derived state
    # =========================================================================

    def _update_state(self, pkg: Package) -> None:
        state = self._states[pkg.id]
        state.update(pkg)
        state.inst_broken = bool(self.broken_groups(pkg))
        state.inst_policy_broken = bool(self.policy_broken_groups(pkg))
        state.now_broken = bool(self.broken_groups(pkg, now=True))

    def _update_affected(self, pkg: Package) -> None:
        """Refresh a package and everything holding a relation on it."""
        self._update_state(pkg)
        for owner in self.universe.reverse_dependents(pkg):
            if owner is not pkg:
                self._update_state(owner)

    def update(self) -> None:
        """Recompute derived flags of every package. Never re-resolves."""
        for pkg in self.universe:
            self._update_state(pkg)

    @property
    def broken_count(self) -> int:
        return sum(1 for state in self._states if state.inst_broken)

    # =========================================================================
    # Marking
    # =========================================================================

    def action_group(self, resolver=None) -> ActionGroup:
        return ActionGroup(self, resolver)

    def mark_protected(self, pkg: Package, protect: bool = True) -> None:
        """Forbid mode changes not requested by the user."""
        self._states[pkg.id].protected = protect

    def _mode_change_ok(self, pkg: Package, from_user: bool, action: str) -> bool:
        if self._states[pkg.id].protected and not from_user:
            marker_log.debug("Ignore %s of %s as it is protected", action, pkg.name)
            return False
        return True

    def set_candidate_version(self, ver: Version) -> None:
        pkg = ver.package
        state = self._states[pkg.id]
        if state.candidate_ver is ver:
            return
        if state.install() and state.install_ver is state.candidate_ver:
            state.install_ver = ver
        state.candidate_ver = ver
        self._update_affected(pkg)

    def mark_keep(self, pkg: Package, from_user: bool = True) -> bool:
        if not self._mode_change_ok(pkg, from_user, 'keep'):
            return False
        state = self._states[pkg.id]
        state.mode = Mode.KEEP
        state.install_ver = pkg.current_ver
        marker_log.debug("MarkKeep %s", pkg.name)
        self._update_affected(pkg)
        return True

    def mark_delete(self, pkg: Package, from_user: bool = True) -> bool:
        """Plan the package as not installed."""
        if not self._mode_change_ok(pkg, from_user, 'delete'):
            return False
        state = self._states[pkg.id]
        state.install_ver = None
        # nothing to delete when nothing is installed
        state.mode = Mode.DELETE if pkg.current_ver is not None else Mode.KEEP
        marker_log.debug("MarkDelete %s", pkg.name)
        self._update_affected(pkg)
        return True

    def mark_install(self, pkg: Package, auto_inst: bool = True, depth: int = 0,
                     from_user: bool = True) -> bool:
        """Plan the candidate version of a package.

        Args:
            pkg: Package to install
            auto_inst: Also install whatever its important relations need
            depth: Position in the auto-install chain
            from_user: Explicit request; clears the auto flag and may
                override cache protection

        Returns:
            True if the candidate is planned afterwards
        """
        planned, follow = self._mark_one(pkg, depth, from_user)
        if planned and auto_inst and follow:
            self._install_dependencies(pkg, depth)
        return planned

    def _mark_one(self, pkg: Package, depth: int, from_user: bool):
        """Plan the candidate of ``pkg`` alone.

        Returns:
            (planned, follow): whether the candidate is planned, and whether
            its relations still need auto-install
        """
        if depth > MAX_AUTOINSTALL_DEPTH:
            autoinstall_log.warning("Auto-install depth limit reached at %s", pkg.name)
            return False, False

        state = self._states[pkg.id]
        cand = state.candidate_ver
        if cand is None:
            marker_log.debug("%sMarkInstall %s: no candidate", '  ' * depth, pkg.name)
            return False, False

        if state.install_ver is cand:
            if from_user:
                state.auto = False
            return True, state.inst_broken or state.inst_policy_broken

        if not self._mode_change_ok(pkg, from_user, 'install'):
            return False, False
        state.install_ver = cand
        state.mode = Mode.KEEP if cand is pkg.current_ver else Mode.INSTALL
        state.auto = not from_user
        marker_log.debug("%sMarkInstall %s", '  ' * depth, cand)
        self._update_affected(pkg)
        return True, True

    def _install_dependencies(self, pkg: Package, depth: int) -> None:
        """Depth-first auto-install, on an explicit stack of relation iterators."""
        stack = [(pkg, depth, iter(self._states[pkg.id].install_ver.depends))]
        while stack:
            parent, level, groups = stack[-1]
            group = next(groups, None)
            if group is None:
                stack.pop()
                continue

            target = self._dependency_target(parent, group, level)
            if target is None:
                continue
            planned, follow = self._mark_one(target, level + 1, from_user=False)
            if planned and follow:
                stack.append((target, level + 1,
                              iter(self._states[target.id].install_ver.depends)))

    def _dependency_target(self, parent: Package, group: List[Dependency],
                           depth: int) -> Optional[Package]:
        """Package to auto-install for an unsatisfied important group, if any."""
        head = group[0]
        if head.is_negative or not self.is_important_dep(head):
            return None
        if self.group_satisfied(group):
            return None
        ver = self._states[parent.id].install_ver
        target = self._choose_target(group)
        if target is None:
            autoinstall_log.debug("%s%s: nothing installable for %s: %s",
                                  '  ' * depth, ver, head.dep_type.value, format_group(group))
            return None
        autoinstall_log.debug("%sInstalling %s as %s of %s",
                              '  ' * depth, target.name, head.dep_type.value, parent.name)
        return target

    def _choose_target(self, group: List[Dependency]) -> Optional[Package]:
        """First alternative whose candidate satisfies it; real packages before providers."""
        for dep in group:
            real = self.universe.find(dep.name)
            if real is not None:
                state = self._states[real.id]
                if not state.protected and dep.satisfied_by_version(state.candidate_ver):
                    return real

            providers = []
            for prv in self.universe.providers(dep.name):
                owner = prv.owner.package
                state = self._states[owner.id]
                if state.protected or state.candidate_ver is not prv.owner:
                    continue
                if dep.satisfied_by_provide(prv):
                    providers.append(owner)
            if providers:
                providers.sort(key=lambda p: (self._states[p.id].candidate_ver.priority, p.name))
                return providers[0]
        return None

    # =========================================================================
    # Garbage
    # =========================================================================

    def _follow_for_autoremove(self, dep_type: DepType) -> bool:
        if dep_type.is_negative:
            return False
        if dep_type.is_critical:
            return True
        if dep_type is DepType.RECOMMENDS:
            return self.recommends_important
        if dep_type is DepType.SUGGESTS:
            return self.suggests_important
        return False

    def mark_and_sweep(self) -> int:
        """Flag planned packages that no manually planned package needs.

        Returns:
            Number of garbage packages
        """
        stack = []
        for pkg in self.universe:
            state = self._states[pkg.id]
            state.garbage = False
            state.marked = state.install_ver is not None and not state.auto
            if state.marked:
                stack.append(pkg)

        while stack:
            pkg = stack.pop()
            ver = self._states[pkg.id].install_ver
            for group in ver.depends:
                if not self._follow_for_autoremove(group[0].dep_type):
                    continue
                for dep in group:
                    for target_ver in self.universe.satisfying_versions(dep):
                        target = self._states[target_ver.package.id]
                        if target.install_ver is target_ver and not target.marked:
                            target.marked = True
                            stack.append(target_ver.package)

        count = 0
        for pkg in self.universe:
            state = self._states[pkg.id]
            if state.install_ver is not None and not state.marked:
                state.garbage = True
                count += 1
                autoremove_log.debug("Garbage: %s", state.install_ver)
        return count
