"""
Central configuration for disposal.

Keys follow the APT naming scheme (``Section::Sub::Name``) and are matched
case-insensitively. Values are layered, last one wins:
    1. Built-in defaults (DEFAULTS below)
    2. System config file: $DISPOSAL_CONFIG, else /etc/disposal/disposal.conf
    3. Files given with --config-file
    4. Command-line flags and -o Key=Value

Config file format (one setting per line):
    Disposal::State::No=/etc/disposal/no.txt
    APT::Install-Recommends=false
    # Comments start with #
"""

import os
import platform
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

# System-wide config file
SYSTEM_CONFIG_FILE = Path("/etc/disposal/disposal.conf")
CONFIG_ENV_VAR = "DISPOSAL_CONFIG"

# Override lists
KEY_STATE_NO = "Disposal::State::No"
KEY_STATE_YES = "Disposal::State::Yes"

# Universe sources
KEY_DPKG_STATUS = "Dir::State::status"
KEY_APT_LISTS = "Dir::State::Lists"
KEY_ARCHITECTURE = "APT::Architecture"

# Engine behaviour
KEY_INSTALL_RECOMMENDS = "APT::Install-Recommends"
KEY_INSTALL_SUGGESTS = "APT::Install-Suggests"
KEY_RECOMMENDS_IMPORTANT = "APT::AutoRemove::RecommendsImportant"
KEY_SUGGESTS_IMPORTANT = "APT::AutoRemove::SuggestsImportant"

# Debug switches (mapped onto loggers by the CLI)
KEY_DEBUG_MARKER = "Debug::pkgDepCache::Marker"
KEY_DEBUG_AUTOINSTALL = "Debug::pkgDepCache::AutoInstall"
KEY_DEBUG_RESOLVER = "Debug::pkgProblemResolver"
KEY_DEBUG_AUTOREMOVE = "Debug::pkgAutoRemove"

KEY_QUIET = "quiet"

DEFAULTS = {
    KEY_STATE_NO: "no.txt",
    KEY_STATE_YES: "yes.txt",
    KEY_DPKG_STATUS: "/var/lib/dpkg/status",
    KEY_APT_LISTS: "/var/lib/apt/lists",
    KEY_INSTALL_RECOMMENDS: "true",
    KEY_INSTALL_SUGGESTS: "false",
    KEY_RECOMMENDS_IMPORTANT: "true",
    KEY_SUGGESTS_IMPORTANT: "true",
    KEY_QUIET: "0",
}

# platform.machine() -> dpkg architecture
MACHINE_TO_DEB_ARCH = {
    'x86_64': 'amd64',
    'amd64': 'amd64',
    'aarch64': 'arm64',
    'arm64': 'arm64',
    'armv7l': 'armhf',
    'armv6l': 'armel',
    'i386': 'i386',
    'i586': 'i386',
    'i686': 'i386',
    'ppc64le': 'ppc64el',
    's390x': 's390x',
    'riscv64': 'riscv64',
    'mips64': 'mips64el',
}

_TRUE_WORDS = ('1', 'yes', 'true', 'on', 'with', 'enable')
_FALSE_WORDS = ('0', 'no', 'false', 'off', 'without', 'disable')


class ConfigError(Exception):
    """Raised when a config file or option cannot be understood."""


def default_architecture() -> str:
    """Native dpkg architecture guessed from the running machine."""
    machine = platform.machine().lower()
    return MACHINE_TO_DEB_ARCH.get(machine, machine or 'amd64')


def parse_option(option: str) -> Tuple[str, str]:
    """Split a ``Key=Value`` string.

    Raises:
        ConfigError: If there is no '=' or the key is empty
    """
    if '=' not in option:
        raise ConfigError(f"Option {option!r} is not of the form Key=Value")
    key, value = option.split('=', 1)
    key = key.strip()
    if not key:
        raise ConfigError(f"Option {option!r} has an empty key")
    return key, value.strip()


class Configuration:
    """Flat key/value store with APT-style keys."""

    def __init__(self, defaults: bool = True):
        # lowercased key -> (original key, value)
        self._values: Dict[str, Tuple[str, str]] = {}
        if defaults:
            for key, value in DEFAULTS.items():
                self.set(key, value)
            self.set(KEY_ARCHITECTURE, default_architecture())

    def set(self, key: str, value) -> None:
        if isinstance(value, bool):
            value = 'true' if value else 'false'
        self._values[key.lower()] = (key, str(value))

    def find(self, key: str, default: str = "") -> str:
        entry = self._values.get(key.lower())
        return entry[1] if entry is not None else default

    def find_bool(self, key: str, default: bool = False) -> bool:
        value = self.find(key).strip().lower()
        if value in _TRUE_WORDS:
            return True
        if value in _FALSE_WORDS:
            return False
        return default

    def find_int(self, key: str, default: int = 0) -> int:
        try:
            return int(self.find(key, str(default)))
        except ValueError:
            return default

    def find_file(self, key: str, default: str = "") -> Path:
        """Return a path setting with ~ expanded."""
        return Path(self.find(key, default) or default).expanduser()

    def read_file(self, path: Union[str, Path]) -> None:
        """Merge a ``key=value`` config file into this configuration.

        Raises:
            ConfigError: If the file cannot be read or a line is malformed
        """
        path = Path(path)
        try:
            lines = path.read_text(encoding='utf-8').splitlines()
        except (OSError, IOError) as e:
            raise ConfigError(f"Cannot read config file {path}: {e}")

        for lineno, line in enumerate(lines, 1):
            line = line.strip()
            if not line or line.startswith('#'):
                continue
            try:
                key, value = parse_option(line)
            except ConfigError:
                raise ConfigError(f"{path}:{lineno}: expected key=value, got {line!r}")
            self.set(key, value)

    def set_option(self, option: str) -> None:
        key, value = parse_option(option)
        self.set(key, value)


def system_config_path() -> Optional[Path]:
    """Locate the system config file, if any.

    $DISPOSAL_CONFIG wins when set (and must exist); otherwise
    /etc/disposal/disposal.conf is used when present.
    """
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    if SYSTEM_CONFIG_FILE.exists():
        return SYSTEM_CONFIG_FILE
    return None


def load_config(config_files=None, options=None, read_system: bool = True) -> Configuration:
    """Build the effective configuration.

    Args:
        config_files: Extra config files, applied in order after the system file
        options: ``Key=Value`` strings applied last
        read_system: Read the system config file when one is found

    Returns:
        Configuration with every layer applied
    """
    config = Configuration()

    if read_system:
        system_path = system_config_path()
        if system_path is not None:
            config.read_file(system_path)

    for path in config_files or []:
        config.read_file(path)

    for option in options or []:
        config.set_option(option)

    return config
