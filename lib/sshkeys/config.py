"""Validate ssh_keygen configuration bundles."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import yaml

from sshkeys import registry
from sshkeys.errors import ConfigurationError
from sshkeys.ssh_keys import DEFAULT_TIMEOUT

DEFAULT_BASEDIR = '/etc/sshkeys'
DEFAULT_DIR = 'ssh'

REGISTRY_REQUESTS = {'authorized_keys', 'known_hosts'}
KEY_REQUESTS = {'public', 'private'}
REQUESTS = REGISTRY_REQUESTS | KEY_REQUESTS

KNOWN_FIELDS = {
    'request', 'name', 'type', 'basedir', 'dir', 'hostkey', 'hostaliases',
    'authkey', 'comment', 'as_hash', 'timeout',
}
BOOL_FIELDS = ('hostkey', 'authkey', 'as_hash')
RESERVED_NAMES = {registry.KNOWN_HOSTS, registry.AUTHORIZED_KEYS, registry.LOCK_FILE}


@dataclass
class KeygenConfig:
    """One ssh_keygen request with its defaults resolved."""
    request: str
    name: Optional[str] = None
    type: str = 'rsa'
    basedir: str = DEFAULT_BASEDIR
    dir: str = DEFAULT_DIR
    hostkey: bool = False
    hostaliases: List[str] = field(default_factory=list)
    authkey: bool = False
    comment: Optional[str] = None
    as_hash: bool = False
    timeout: float = DEFAULT_TIMEOUT

    @classmethod
    def from_bundle(cls, bundle) -> 'KeygenConfig':
        """Build a config from a mapping of options, rejecting invalid ones.

        Raises:
            ConfigurationError: the bundle is not a mapping, has unknown
                fields, or lacks ``request`` (or ``name`` for key requests)
        """
        if not isinstance(bundle, dict):
            raise ConfigurationError("config argument must be a mapping")

        # None means "use the default", as an unset option would
        data = {k: v for k, v in bundle.items() if v is not None}

        unknown = set(data.keys()) - KNOWN_FIELDS
        if unknown:
            raise ConfigurationError(f"unknown option(s): {', '.join(sorted(map(str, unknown)))}")

        request = data.get('request')
        if request is None:
            raise ConfigurationError("request argument is required")
        if request not in REQUESTS:
            raise ConfigurationError(f"unsupported request '{request}'")
        if data.get('name') is None and request not in REGISTRY_REQUESTS:
            raise ConfigurationError("name argument is required")
        if data.get('name') is not None:
            check_key_name(str(data['name']))

        for name in BOOL_FIELDS:
            if name in data and not isinstance(data[name], bool):
                raise ConfigurationError(f"{name} must be true or false, got {data[name]!r}")

        aliases = data.get('hostaliases', [])
        if isinstance(aliases, str):
            aliases = [aliases]
        if not isinstance(aliases, (list, tuple)) or not all(isinstance(a, str) for a in aliases):
            raise ConfigurationError("hostaliases must be a list of strings")
        data['hostaliases'] = list(aliases)

        timeout = data.get('timeout', DEFAULT_TIMEOUT)
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ConfigurationError(f"timeout must be a positive number, got {timeout!r}")
        data['timeout'] = float(timeout)

        for name in ('name', 'type', 'basedir', 'dir', 'comment'):
            if name in data:
                data[name] = str(data[name])

        return cls(**data)

    @classmethod
    def load(cls, path: Path) -> 'KeygenConfig':
        """Load a bundle from a YAML file."""
        with open(path, encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
        return cls.from_bundle(data)

    @property
    def is_registry_request(self) -> bool:
        return self.request in REGISTRY_REQUESTS

    @property
    def directory(self) -> Path:
        """Directory holding the keys and registries."""
        return Path(self.basedir) / self.dir

    def default_comment(self, hostname: Optional[str]) -> Optional[str]:
        """Comment to give the key when none was configured.

        An explicit empty comment is kept as-is.
        """
        if self.comment is not None:
            return self.comment
        if self.hostkey:
            return hostname
        if self.authkey:
            return f'root@{hostname}'
        return None


def check_key_name(name: str) -> None:
    """Reject names that would not be a private key file of their own.

    The name must be a plain file name inside the key directory that does
    not collide with a registry, the lock file, or another key's public
    key or certificate.
    """
    if name in ('', '.', '..') or '/' in name:
        raise ConfigurationError(f"invalid key name {name!r}: must be a plain file name")
    if name in RESERVED_NAMES:
        raise ConfigurationError(f"invalid key name {name!r}: reserved for a registry or the lock file")
    if name.endswith('.pub'):
        raise ConfigurationError(f"invalid key name {name!r}: must not end in .pub or -cert.pub")
