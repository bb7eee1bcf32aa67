"""Errors raised while managing SSH keys and registries."""

from typing import Optional


class SSHKeysError(Exception):
    """Base class for sshkeys failures.

    The dispatcher sets ``request`` on the way out so the message names the
    request that could not be fulfilled.
    """

    request: Optional[str] = None

    def __str__(self) -> str:
        message = super().__str__()
        if self.request:
            return f"unable to fulfill request '{self.request}': {message}"
        return message


class ConfigurationError(SSHKeysError, ValueError):
    """Bad or missing configuration: bundle fields, facts, target directory."""


class KeyGenerationError(SSHKeysError):
    """ssh-keygen failed to produce a keypair."""

    def __init__(self, message: str, output: str = '', returncode: Optional[int] = None):
        super().__init__(message)
        self.output = output
        self.returncode = returncode


class KeyGenerationTimeout(KeyGenerationError):
    """ssh-keygen did not finish before its deadline."""

    def __init__(self, message: str, timeout: float, output: str = ''):
        super().__init__(message, output=output)
        self.timeout = timeout


class StorageError(SSHKeysError, OSError):
    """A key file or registry could not be read or written."""
