"""Node facts used to name host keys."""

import socket
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

from sshkeys.errors import ConfigurationError

FACT_NAMES = ('hostname', 'fqdn', 'ipaddress')
UNQUALIFIED_NAMES = {'localhost', 'localhost.localdomain'}


@dataclass
class Facts:
    """Identity of the node a key is being generated for."""
    hostname: Optional[str] = None
    fqdn: Optional[str] = None
    ipaddress: Optional[str] = None

    @classmethod
    def detect(cls) -> 'Facts':
        """Gather facts for the local machine from the resolver."""
        hostname = socket.gethostname().split('.')[0]
        fqdn = socket.getfqdn()
        # getfqdn falls back to the bare hostname when the name does not resolve
        if '.' not in fqdn or fqdn in UNQUALIFIED_NAMES:
            fqdn = None
        try:
            ipaddress = socket.gethostbyname(fqdn or hostname)
        except OSError:
            ipaddress = None
        return cls(hostname=hostname, fqdn=fqdn, ipaddress=ipaddress)

    @classmethod
    def from_mapping(cls, data: dict) -> 'Facts':
        """Pick the known facts out of a larger mapping (e.g. facter output)."""
        if not isinstance(data, dict):
            raise ConfigurationError("facts must be a mapping")
        return cls(**{name: _as_text(data.get(name)) for name in FACT_NAMES})

    @classmethod
    def load(cls, path: Path) -> 'Facts':
        """Load facts from a YAML (or JSON) file."""
        with open(path, encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
        return cls.from_mapping(data)

    def hosts(self) -> list:
        """Host identifiers for a known_hosts line, in hostname, fqdn, ip order."""
        return [value for value in (self.hostname, self.fqdn, self.ipaddress) if value]


def _as_text(value) -> Optional[str]:
    if value is None or value == '':
        return None
    return str(value)
