"""known_hosts and authorized_keys registries.

Both registries are plain OpenSSH text files living next to the keys. They
start with a header comment and are only ever appended to.
"""

import fcntl
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Union

from sshkeys.errors import StorageError

logger = logging.getLogger(__name__)

KNOWN_HOSTS = 'known_hosts'
AUTHORIZED_KEYS = 'authorized_keys'
LOCK_FILE = '.sshkeys.lock'
HEADER = '# managed by sshkeys\n'


def read_known_hosts(directory: Path) -> str:
    """Return the raw known_hosts registry.

    Raises:
        StorageError: if no host key has been registered in ``directory`` yet
    """
    path = directory / KNOWN_HOSTS
    try:
        return path.read_text()
    except OSError as e:
        raise StorageError(f"unable to read {path}: {e}") from e


def read_authorized_keys(directory: Path, as_hash: bool = False) -> Union[str, Dict]:
    """Return the authorized_keys registry, raw or keyed by comment.

    A missing registry reads as empty, since callers may ask for it before
    the first authorized key is generated.

    Args:
        directory: Directory holding the registry
        as_hash: Parse into ``{comment: {'type', 'key', 'name'}}``

    Returns:
        File contents, or the parsed mapping. Later lines win when two
        entries share a comment.
    """
    path = directory / AUTHORIZED_KEYS
    if not path.exists():
        return {} if as_hash else ''

    try:
        if not as_hash:
            return path.read_text()

        result = {}
        with open(path) as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith('#'):
                    continue
                fields = line.split()
                if len(fields) < 2:
                    logger.debug("Skipping malformed line in %s: %r", path, line)
                    continue
                key_type, key = fields[0], fields[1]
                comment = fields[2] if len(fields) > 2 else None
                result[comment] = {'type': key_type, 'key': key, 'name': comment}
        return result
    except OSError as e:
        raise StorageError(f"unable to read {path}: {e}") from e


def ensure_file(path: Path) -> None:
    """Create a registry with its header line unless it already exists."""
    if not path.exists():
        logger.info("Creating registry %s", path)
        path.write_text(HEADER)


def append_line(path: Path, line: str) -> None:
    """Append one entry, terminating it with a newline if needed."""
    if not line.endswith('\n'):
        line += '\n'
    with open(path, 'a') as f:
        f.write(line)


def contains_key(path: Path, public_key: str) -> bool:
    """Check whether any known_hosts line carries exactly ``public_key``.

    Args:
        path: known_hosts registry
        public_key: Key literal as ``'<type> <base64>'``

    Returns:
        True if some line's key field equals ``public_key``
    """
    if not path.exists():
        return False

    with open(path) as f:
        for line in f:
            if line.startswith('#'):
                continue
            fields = line.split()
            if len(fields) >= 3 and ' '.join(fields[1:3]) == public_key:
                return True
    return False


@contextmanager
def directory_lock(directory: Path) -> Iterator[None]:
    """Hold an exclusive advisory lock on a key directory.

    Other sshkeys processes generating or registering keys in the same
    directory block until the lock is released.
    """
    lock_path = directory / LOCK_FILE
    with open(lock_path, 'a') as lock_file:
        fcntl.flock(lock_file, fcntl.LOCK_EX)
        try:
            yield
        finally:
            fcntl.flock(lock_file, fcntl.LOCK_UN)
