"""Tests for loading the universe from dpkg/APT state files"""

import gzip

import pytest

from disposal.core.config import (
    Configuration,
    KEY_APT_LISTS,
    KEY_ARCHITECTURE,
    KEY_DPKG_STATUS,
)
from disposal.core.sources import (
    CacheError,
    UniverseLoader,
    find_package_lists,
    is_installed,
    load_universe,
)
from disposal.core.universe import Policy, Priority

STATUS = """\
Package: base-files
Status: install ok installed
Priority: required
Architecture: amd64
Version: 12.4

Package: old-tool
Status: deinstall ok config-files
Priority: optional
Architecture: amd64
Version: 1.0

Package: foreign-lib
Status: install ok installed
Priority: optional
Architecture: i386
Version: 1.0

Package: local-tool
Status: install ok unpacked
Architecture: all
Version: 0.1
"""

MAIN_PACKAGES = """\
Package: base-files
Version: 12.5
Priority: required
Architecture: amd64
Depends: libc6 (>= 2.34)

Package: libc6
Version: 2.36-9
Priority: optional
Architecture: amd64
Provides: libc-bin (= 2.36-9)
Breaks: old-tool (<< 2.0)
"""

CONTRIB_PACKAGES = """\
Package: game-data
Version: 1.0
Priority: optional
Architecture: all
Recommends: game-engine | game-engine-lite

Package: armhf-only
Version: 1.0
Architecture: armhf
"""


@pytest.fixture
def state_dir(tmp_path):
    status = tmp_path / 'status'
    status.write_text(STATUS)
    lists = tmp_path / 'lists'
    lists.mkdir()
    (lists / 'deb.debian.org_debian_dists_stable_main_binary-amd64_Packages').write_text(
        MAIN_PACKAGES)
    (lists / 'deb.debian.org_debian_dists_stable_contrib_binary-amd64_Packages.gz').write_bytes(
        gzip.compress(CONTRIB_PACKAGES.encode()))
    (lists / 'deb.debian.org_debian_dists_stable_InRelease').write_text("not an index\n")
    (lists / 'lock').write_text("")
    (lists / 'partial').mkdir()
    return status, lists


class TestIsInstalled:
    """Tests for dpkg Status parsing."""

    def test_installed(self):
        assert is_installed('install ok installed')
        assert is_installed('hold ok half-configured')

    def test_not_installed(self):
        assert not is_installed('deinstall ok config-files')
        assert not is_installed('purge ok not-installed')
        assert not is_installed(None)
        assert not is_installed('')


class TestFindPackageLists:
    """Tests for index discovery."""

    def test_finds_indexes_only(self, state_dir):
        _, lists = state_dir
        names = [path.name for path in find_package_lists(lists)]
        assert names == [
            'deb.debian.org_debian_dists_stable_contrib_binary-amd64_Packages.gz',
            'deb.debian.org_debian_dists_stable_main_binary-amd64_Packages',
        ]

    def test_missing_dir(self, tmp_path):
        assert find_package_lists(tmp_path / 'nowhere') == []


class TestUniverseLoader:
    """Tests for building a universe from files."""

    def test_load(self, state_dir):
        status, lists = state_dir
        u = UniverseLoader(['amd64']).load(status, lists)

        base = u.find('base-files')
        assert [v.version for v in base.versions] == ['12.5', '12.4']
        assert base.current_ver.version == '12.4'
        assert base.current_ver.downloadable is False
        assert base.versions[0].priority is Priority.REQUIRED
        assert Policy(u).candidate(base).version == '12.5'

    def test_relations(self, state_dir):
        status, lists = state_dir
        u = UniverseLoader(['amd64']).load(status, lists)

        (dep,), = u.find('base-files').versions[0].depends
        assert (dep.name, dep.op, dep.version) == ('libc6', '>=', '2.34')

        libc = u.find('libc6').versions[0]
        assert [(p.name, p.version) for p in libc.provides] == [('libc-bin', '2.36-9')]
        (breaks,), = libc.depends
        assert breaks.is_negative
        assert (breaks.name, breaks.op, breaks.version) == ('old-tool', '<<', '2.0')

        game = u.find('game-data').versions[0]
        assert [d.name for d in game.depends[0]] == ['game-engine', 'game-engine-lite']

    def test_skips_foreign_and_removed(self, state_dir):
        status, lists = state_dir
        u = UniverseLoader(['amd64']).load(status, lists)
        assert u.find('foreign-lib') is None
        assert u.find('armhf-only') is None
        assert u.find('old-tool') is None

    def test_installed_only_package(self, state_dir):
        status, lists = state_dir
        u = UniverseLoader(['amd64']).load(status, lists)
        local = u.find('local-tool')
        assert local.current_ver.version == '0.1'
        assert Policy(u).candidate(local) is local.current_ver

    def test_missing_status(self, tmp_path):
        with pytest.raises(CacheError):
            UniverseLoader(['amd64']).load(tmp_path / 'status', tmp_path)

    def test_load_universe_from_config(self, state_dir):
        status, lists = state_dir
        config = Configuration()
        config.set(KEY_DPKG_STATUS, str(status))
        config.set(KEY_APT_LISTS, str(lists))
        config.set(KEY_ARCHITECTURE, 'i386')
        u = load_universe(config)
        assert u.find('foreign-lib').current_ver.version == '1.0'
        assert u.find('libc6') is None
