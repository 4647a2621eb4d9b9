"""Tests for the clean-slate scan"""

import logging

import pytest

from disposal.core.config import Configuration, KEY_INSTALL_RECOMMENDS
from disposal.core.overrides import Overrides
from disposal.core.problem import ProblemResolver
from disposal.core.scan import ChangeKind, Scanner, scan
from disposal.core.universe import Priority, Universe


def upgrade_universe(b_installed=False, c_installed=True):
    """a is required and its new version pulls in b; c is a leftover."""
    u = Universe()
    a = u.add_package('a')
    a.add_version('1.0', priority=Priority.REQUIRED, installed=True, downloadable=False)
    a.add_version('2.0', priority=Priority.REQUIRED, depends='b')
    u.add_package('b').add_version('1.0', installed=b_installed)
    u.add_package('c').add_version('1.0', installed=c_installed)
    return u


class TestScan:
    """End to end scans over small universes."""

    def test_upgrade_pulls_new_dependency(self):
        u = upgrade_universe()
        result = scan(u, Overrides())
        assert result.lines() == ['b+', 'c-']
        assert result.broken_count == 0

    def test_matching_system_has_no_changes(self):
        u = upgrade_universe(b_installed=True, c_installed=False)
        result = scan(u, Overrides())
        assert result.no_changes
        assert result.lines() == []

    def test_upgrade_itself_is_not_listed(self):
        u = upgrade_universe(b_installed=True, c_installed=False)
        result = scan(u, Overrides())
        assert all(change.package.name != 'a' for change in result.changes)

    def test_idempotent(self):
        u = upgrade_universe()
        first = scan(u, Overrides()).lines()
        second = scan(u, Overrides()).lines()
        assert first == second

    def test_current_versions_restored(self):
        u = upgrade_universe()
        before = {pkg.name: pkg.current_ver for pkg in u}
        scan(u, Overrides())
        assert {pkg.name: pkg.current_ver for pkg in u} == before

    def test_current_versions_restored_on_error(self, monkeypatch):
        u = upgrade_universe()
        before = {pkg.name: pkg.current_ver for pkg in u}

        def explode(self):
            raise RuntimeError("resolver failure")

        monkeypatch.setattr(ProblemResolver, 'resolve', explode)
        with pytest.raises(RuntimeError):
            scan(u, Overrides())
        assert {pkg.name: pkg.current_ver for pkg in u} == before

    def test_scanner_keeps_cache(self):
        u = upgrade_universe()
        scanner = Scanner(u, Overrides())
        scanner.run()
        assert scanner.cache[u.find('b')].new_install()
        assert scanner.cache[u.find('c')].delete()


class TestReferencePriority:
    """Tests for the base set threshold."""

    def make_universe(self):
        u = Universe()
        u.add_package('base-files').add_version('12', priority=Priority.REQUIRED, installed=True)
        u.add_package('less').add_version('590', priority=Priority.IMPORTANT)
        u.add_package('bash-completion').add_version('2.11', priority=Priority.STANDARD)
        return u

    def test_required_only(self):
        result = scan(self.make_universe(), Overrides())
        assert result.lines() == []

    def test_standard_threshold(self):
        overrides = Overrides(reference_priority=Priority.STANDARD)
        result = scan(self.make_universe(), overrides)
        assert result.lines() == ['  less+', '  bash-completion+']
        assert result.reference_priority is Priority.STANDARD


class TestExclusions:
    """Tests for the no list."""

    def test_excluded_base_package_removed(self):
        u = Universe()
        base = u.add_package('base')
        base.add_version('1.0', priority=Priority.REQUIRED, installed=True)
        result = scan(u, Overrides(excluded=[base]))
        assert result.lines() == ['base-']

    def test_excluded_base_package_not_installed(self):
        u = Universe()
        base = u.add_package('base')
        base.add_version('1.0', priority=Priority.REQUIRED)
        result = scan(u, Overrides(excluded=[base]))
        assert result.no_changes

    def test_excluded_dependency_leaves_broken(self, caplog):
        u = Universe()
        core = u.add_package('core')
        core.add_version('1.0', priority=Priority.REQUIRED, depends='dep', installed=True)
        dep = u.add_package('dep')
        dep.add_version('1.0', installed=True)
        with caplog.at_level(logging.WARNING):
            result = scan(u, Overrides(excluded=[dep]))
        assert result.lines() == ['dep-']
        assert result.broken_count == 1
        assert "1 broken" in caplog.text

    def test_exclusion_beats_inclusion(self, caplog):
        u = Universe()
        tool = u.add_package('tool')
        ver = tool.add_version('1.0')
        overrides = Overrides(excluded=[tool], included=[(tool, ver)])
        with caplog.at_level(logging.WARNING):
            result = scan(u, overrides)
        assert result.no_changes
        assert "tool is in both lists" in caplog.text


class TestInclusions:
    """Tests for the yes list."""

    def test_included_package_is_notable(self):
        u = Universe()
        tool = u.add_package('tool')
        ver = tool.add_version('1.0', depends='libtool')
        u.add_package('libtool').add_version('1.0')
        result = scan(u, Overrides(included=[(tool, ver)]))
        assert result.lines() == ['tool+', '  libtool+']

    def test_included_pinned_version(self):
        u = Universe()
        tool = u.add_package('tool')
        old = tool.add_version('1.0', installed=True)
        tool.add_version('2.0')
        result = scan(u, Overrides(included=[(tool, old)]))
        assert result.no_changes


class TestNotability:
    """Tests for notable versus incidental changes."""

    def test_dependency_of_kept_package_is_notable(self):
        u = Universe()
        u.add_package('kept').add_version('1.0', priority=Priority.REQUIRED,
                                          depends='liba', installed=True)
        u.add_package('liba').add_version('1.0')
        assert scan(u, Overrides()).lines() == ['liba+']

    def test_provider_for_kept_package_is_notable(self):
        u = Universe()
        u.add_package('mailutils').add_version('1.0', priority=Priority.REQUIRED,
                                               depends='mail-transport-agent', installed=True)
        u.add_package('exim4').add_version('4.96', priority=Priority.EXTRA,
                                           provides='mail-transport-agent')
        u.add_package('postfix').add_version('3.7', priority=Priority.OPTIONAL,
                                             provides='mail-transport-agent')
        assert scan(u, Overrides()).lines() == ['postfix+']

    def test_removal_cascade(self):
        u = Universe()
        u.add_package('app').add_version('1.0', depends='libapp', installed=True)
        u.add_package('libapp').add_version('1.0', installed=True)
        result = scan(u, Overrides())
        assert result.lines() == ['app-', '  libapp-']
        kinds = [change.kind for change in result.changes]
        assert kinds == [ChangeKind.REMOVE, ChangeKind.REMOVE]

    def test_exclusion_is_notable_under_removed_dependent(self):
        u = Universe()
        u.add_package('app').add_version('1.0', depends='lib', installed=True)
        lib = u.add_package('lib')
        lib.add_version('1.0', installed=True)
        result = scan(u, Overrides(excluded=[lib]))
        assert result.lines() == ['app-', 'lib-']

    def test_removal_cascade_through_provides(self):
        u = Universe()
        u.add_package('mua').add_version('1.0', depends='mta', installed=True)
        u.add_package('postfix').add_version('3.7', provides='mta', installed=True)
        assert scan(u, Overrides()).lines() == ['mua-', '  postfix-']

    def test_old_version_dependency_is_incidental(self):
        # only the installed 1.0 of kept needs x, its 2.0 reaches x through y
        u = Universe()
        kept = u.add_package('kept')
        kept.add_version('1.0', priority=Priority.REQUIRED, depends='x',
                         installed=True, downloadable=False)
        kept.add_version('2.0', priority=Priority.REQUIRED, depends='y')
        u.add_package('y').add_version('1.0', depends='x')
        u.add_package('x').add_version('1.0')
        assert scan(u, Overrides()).lines() == ['y+', '  x+']

    def test_recommends_follow_config(self):
        u = Universe()
        u.add_package('base').add_version('1.0', priority=Priority.REQUIRED,
                                          recommends='rec', installed=True)
        u.add_package('rec').add_version('1.0')
        assert scan(u, Overrides()).lines() == ['rec+']

        config = Configuration()
        config.set(KEY_INSTALL_RECOMMENDS, False)
        assert scan(u, Overrides(), config=config).no_changes


class TestResolution:
    """Tests for resolver interplay during a scan."""

    def test_dropped_package_takes_its_dependencies(self, caplog):
        u = Universe()
        u.add_package('core').add_version('1.0', priority=Priority.REQUIRED, depends='helper')
        u.add_package('helper').add_version('1.0', depends='libh', conflicts='core')
        u.add_package('libh').add_version('1.0')
        with caplog.at_level(logging.WARNING):
            result = scan(u, Overrides())
        assert result.lines() == ['  core+']
        assert result.broken_count == 1


class TestLongChains:
    """Tests for scans over deep dependency chains."""

    def test_installed_chain(self):
        u = Universe()
        for i in range(601):
            depends = f'p{i + 1}' if i < 600 else None
            priority = Priority.REQUIRED if i == 0 else Priority.OPTIONAL
            u.add_package(f'p{i}').add_version('1', priority=priority, depends=depends,
                                               installed=True)
        result = scan(u, Overrides())
        assert result.no_changes
        assert result.broken_count == 0
