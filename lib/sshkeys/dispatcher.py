"""Single entry point: fulfil one ssh_keygen request."""

import logging
from pathlib import Path
from typing import Dict, Optional, Union

from sshkeys import registry
from sshkeys.config import KeygenConfig
from sshkeys.errors import ConfigurationError, SSHKeysError, StorageError
from sshkeys.facts import Facts
from sshkeys.ssh_keys import Keypair, KeySpec

logger = logging.getLogger(__name__)


def ssh_keygen(bundle: dict, facts: Optional[Facts] = None) -> Union[str, Dict]:
    """Validate a configuration bundle and return the requested artifact.

    Args:
        bundle: Options mapping; see ``KeygenConfig`` for the recognised keys
        facts: Identity of the node the key belongs to. Only needed for
            host keys and default comments.

    Returns:
        Key text for ``public``/``private``, the known_hosts text, or the
        authorized_keys text (a mapping keyed by comment with ``as_hash``)

    Raises:
        ConfigurationError: invalid bundle, missing fqdn for a host key, or
            the target path is not a directory
        KeyGenerationError: ssh-keygen failed or timed out
        StorageError: a key file or registry could not be read or written

    Example:
        >>> ssh_keygen({'request': 'public', 'name': 'web1', 'type': 'ed25519'}, facts)
        'ssh-ed25519 AAAA... \\n'
    """
    return fulfil(KeygenConfig.from_bundle(bundle), facts)


def fulfil(config: KeygenConfig, facts: Optional[Facts] = None) -> Union[str, Dict]:
    """Fulfil an already validated request.

    Every error raised from here on names ``config.request``.
    """
    facts = facts or Facts()

    try:
        if config.hostkey and not config.is_registry_request and not facts.fqdn:
            raise ConfigurationError("unable to determine fqdn: please check system configuration")

        directory = prepare_directory(config.directory)

        if config.request == 'authorized_keys':
            return registry.read_authorized_keys(directory, as_hash=config.as_hash)
        if config.request == 'known_hosts':
            return registry.read_known_hosts(directory)

        keypair = Keypair(
            KeySpec(
                name=config.name,
                directory=directory,
                algorithm=config.type,
                comment=config.default_comment(facts.hostname),
            ),
            facts=facts,
            hostkey=config.hostkey,
            authkey=config.authkey,
            hostaliases=config.hostaliases,
            timeout=config.timeout,
        )
        keypair.ensure()

        if config.request == 'public':
            return keypair.public_key
        return keypair.private_key
    except SSHKeysError as e:
        e.request = config.request
        raise
    except OSError as e:
        error = StorageError(str(e))
        error.request = config.request
        raise error from e


def prepare_directory(directory: Path) -> Path:
    """Create the key directory if needed.

    Raises:
        ConfigurationError: if something other than a directory is in the way
    """
    if directory.exists() and not directory.is_dir():
        raise ConfigurationError(f"{directory} exists but is not directory")
    if not directory.exists():
        logger.info("Creating key directory %s", directory)
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"unable to create {directory}: {e}") from e
    return directory
