"""SSH keypair generation and registration."""

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from sshkeys import registry
from sshkeys.errors import (
    ConfigurationError, KeyGenerationError, KeyGenerationTimeout, StorageError,
)
from sshkeys.facts import Facts

logger = logging.getLogger(__name__)

SSH_KEYGEN = 'ssh-keygen'
DEFAULT_TIMEOUT = 60.0

PRIVATE_KEY = 'private_key'
PUBLIC_KEY = 'public_key'
CERTIFICATE = 'certificate'

SUFFIXES = {
    PRIVATE_KEY: '',
    PUBLIC_KEY: '.pub',
    CERTIFICATE: '-cert.pub',
}


def generate_keypair(key_path: Path, key_type: str = 'rsa', comment: Optional[str] = None,
                     timeout: float = DEFAULT_TIMEOUT) -> None:
    """Generate an unencrypted SSH keypair with ssh-keygen.

    Args:
        key_path: Path where private key will be saved (public key gets .pub suffix)
        key_type: Algorithm passed to ``ssh-keygen -t``
        comment: Key comment; None leaves it empty
        timeout: Seconds to wait for ssh-keygen

    Raises:
        KeyGenerationError: ssh-keygen is missing or exited non-zero
        KeyGenerationTimeout: ssh-keygen ran longer than ``timeout``
    """
    cmd = [
        SSH_KEYGEN,
        '-q',
        '-t', key_type,
        '-N', '',  # No passphrase
        '-C', comment or '',
        '-f', str(key_path),
    ]
    logger.debug("Running %s", ' '.join(cmd))

    try:
        result = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT,
                                stdin=subprocess.DEVNULL, text=True, timeout=timeout)
    except subprocess.TimeoutExpired as e:
        output = e.output or ''
        if isinstance(output, bytes):
            output = output.decode(errors='replace')
        raise KeyGenerationTimeout(
            f"{SSH_KEYGEN} did not finish within {timeout}s generating {key_path}",
            timeout=timeout, output=output,
        ) from e
    except FileNotFoundError as e:
        raise KeyGenerationError(f"{SSH_KEYGEN} not found: {e}") from e

    if result.returncode != 0:
        raise KeyGenerationError(
            f"calling '{' '.join(cmd)}' resulted in error: {result.stdout.strip()}",
            output=result.stdout, returncode=result.returncode,
        )


def public_key_literal(public_key: str) -> str:
    """Strip the comment from a public key line, leaving ``'<type> <base64>'``."""
    return ' '.join(public_key.split()[:2])


@dataclass
class KeySpec:
    """A named keypair inside a key directory."""
    name: str
    directory: Path
    algorithm: str = 'rsa'
    comment: Optional[str] = None

    def path_for(self, kind: str = PRIVATE_KEY) -> Path:
        """Path of the private key, public key or certificate file."""
        return self.directory / f'{self.name}{SUFFIXES[kind]}'


class Keypair:
    """Lazily generated keypair, optionally registered as a host or authorized key."""

    def __init__(self, spec: KeySpec, facts: Optional[Facts] = None,
                 hostkey: bool = False, authkey: bool = False,
                 hostaliases: Optional[List[str]] = None,
                 timeout: float = DEFAULT_TIMEOUT):
        self.spec = spec
        self.facts = facts or Facts()
        self.hostkey = hostkey
        self.authkey = authkey
        self.hostaliases = hostaliases or []
        self.timeout = timeout
        self._contents: Dict[str, str] = {}

    @property
    def directory(self) -> Path:
        return self.spec.directory

    def ensure(self) -> bool:
        """Generate the keypair unless its private key already exists.

        Registration in authorized_keys/known_hosts only follows a fresh
        generation.

        Returns:
            True if a new keypair was generated
        """
        keyfile = self.spec.path_for(PRIVATE_KEY)

        with registry.directory_lock(self.directory):
            if keyfile.exists():
                logger.debug("Keypair %s already exists", keyfile)
                return False

            logger.info("Generating %s keypair %s", self.spec.algorithm, keyfile)
            generate_keypair(keyfile, self.spec.algorithm, self.spec.comment, self.timeout)

            if self.authkey:
                self.add_to_authorized_keys()
            if self.hostkey:
                self.add_to_known_hosts()
        return True

    def add_to_authorized_keys(self) -> None:
        """Append the public key, with its comment, to authorized_keys."""
        path = self.directory / registry.AUTHORIZED_KEYS
        registry.ensure_file(path)
        registry.append_line(path, self._read(PUBLIC_KEY))
        logger.info("Added %s to %s", self.spec.name, path)

    def add_to_known_hosts(self) -> None:
        """Register the public key for this node in known_hosts.

        An existing line with the same key is left alone, even if the host
        aliases have changed since it was written.
        """
        if not self.facts.fqdn:
            raise ConfigurationError("unable to determine fqdn: please check system configuration")

        path = self.directory / registry.KNOWN_HOSTS
        registry.ensure_file(path)

        hosts = ','.join(self.facts.hosts() + list(self.hostaliases))
        key = public_key_literal(self._read(PUBLIC_KEY))

        if registry.contains_key(path, key):
            logger.debug("%s already lists key %s", path, self.spec.name)
            return

        registry.append_line(path, f'{hosts} {key}')
        logger.info("Added %s to %s as %s", self.spec.name, path, hosts)

    def keyfile_contents(self, kind: str = PRIVATE_KEY) -> str:
        """Read a key file, generating the keypair first if it is missing."""
        if kind not in self._contents and not self.spec.path_for(kind).exists():
            self.ensure()
        return self._read(kind)

    def _read(self, kind: str) -> str:
        if kind not in self._contents:
            keyfile = self.spec.path_for(kind)
            try:
                self._contents[kind] = keyfile.read_text()
            except OSError as e:
                raise StorageError(f"unable to read file '{keyfile}': {e}") from e
        return self._contents[kind]

    @property
    def private_key(self) -> str:
        return self.keyfile_contents(PRIVATE_KEY)

    @property
    def public_key(self) -> str:
        return self.keyfile_contents(PUBLIC_KEY)
