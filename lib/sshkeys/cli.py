#!/usr/bin/env python3
"""sshkeys CLI - generate SSH keys and maintain known_hosts/authorized_keys."""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
import yaml

from sshkeys.config import DEFAULT_BASEDIR, DEFAULT_DIR, KeygenConfig
from sshkeys.dispatcher import fulfil, ssh_keygen
from sshkeys.errors import SSHKeysError
from sshkeys.facts import Facts
from sshkeys.ssh_keys import DEFAULT_TIMEOUT


def _resolve_facts(facts_file: Optional[str], hostname: Optional[str],
                   fqdn: Optional[str], ipaddress: Optional[str]) -> Facts:
    """Facts from a file (or the local resolver), with command-line overrides."""
    facts = Facts.load(Path(facts_file)) if facts_file else Facts.detect()
    if hostname:
        facts.hostname = hostname
    if fqdn:
        facts.fqdn = fqdn
    if ipaddress:
        facts.ipaddress = ipaddress
    return facts


def _emit(result) -> None:
    if isinstance(result, dict):
        click.echo(json.dumps(result, indent=2))
    else:
        click.echo(result, nl=False)


def _run(bundle: dict, facts: Optional[Facts] = None) -> None:
    try:
        _emit(ssh_keygen(bundle, facts))
    except SSHKeysError as e:
        click.secho(f"❌ Error: {e}", fg='red', err=True)
        sys.exit(1)


def directory_options(f):
    """Options locating the key directory."""
    f = click.option('--dir', 'dir_', default=DEFAULT_DIR, show_default=True,
                     help='Subdirectory of basedir holding keys and registries')(f)
    f = click.option('--basedir', envvar='SSHKEYS_BASEDIR', default=DEFAULT_BASEDIR,
                     show_default=True, help='Root of the key store')(f)
    return f


def key_options(f):
    """Options describing the keypair and how to register it."""
    f = directory_options(f)
    for option in reversed([
        click.argument('name'),
        click.option('--type', '-t', 'key_type', default='rsa', show_default=True,
                     help='Key algorithm passed to ssh-keygen'),
        click.option('--comment', '-C', default=None,
                     help='Key comment (default: hostname for host keys, root@hostname for authorized keys)'),
        click.option('--hostkey', is_flag=True, help='Register the key in known_hosts'),
        click.option('--hostalias', 'hostaliases', multiple=True,
                     help='Extra host identifier for known_hosts (repeatable)'),
        click.option('--authkey', is_flag=True, help='Register the key in authorized_keys'),
        click.option('--timeout', type=float, default=DEFAULT_TIMEOUT, show_default=True,
                     help='Seconds to wait for ssh-keygen'),
        click.option('--facts', 'facts_file', type=click.Path(exists=True, dir_okay=False),
                     help='YAML/JSON file with hostname, fqdn and ipaddress facts'),
        click.option('--hostname', help='Override the hostname fact'),
        click.option('--fqdn', help='Override the fqdn fact'),
        click.option('--ipaddress', help='Override the ipaddress fact'),
    ]):
        f = option(f)
    return f


def _key_request(request, name, key_type, comment, hostkey, hostaliases, authkey,
                 timeout, facts_file, hostname, fqdn, ipaddress, basedir, dir_):
    try:
        facts = _resolve_facts(facts_file, hostname, fqdn, ipaddress)
    except (SSHKeysError, OSError, yaml.YAMLError) as e:
        click.secho(f"❌ Error: unable to load facts: {e}", fg='red', err=True)
        sys.exit(1)

    _run({
        'request': request,
        'name': name,
        'type': key_type,
        'comment': comment,
        'hostkey': hostkey,
        'hostaliases': list(hostaliases),
        'authkey': authkey,
        'timeout': timeout,
        'basedir': basedir,
        'dir': dir_,
    }, facts)


@click.group()
@click.version_option()
@click.option('--verbose', '-v', is_flag=True, help='Log what is being generated and registered')
def main(verbose):
    """Generate SSH keypairs and maintain known_hosts/authorized_keys registries."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
    )


@main.command()
@key_options
def public(**kwargs):
    """Print the public key NAME, generating the keypair on first use."""
    _key_request('public', **kwargs)


@main.command()
@key_options
def private(**kwargs):
    """Print the private key NAME, generating the keypair on first use."""
    _key_request('private', **kwargs)


@main.command('known-hosts')
@directory_options
def known_hosts(basedir, dir_):
    """Print the known_hosts registry."""
    _run({'request': 'known_hosts', 'basedir': basedir, 'dir': dir_})


@main.command('authorized-keys')
@click.option('--as-hash', is_flag=True, help='Print entries as JSON keyed by comment')
@directory_options
def authorized_keys(as_hash, basedir, dir_):
    """Print the authorized_keys registry."""
    _run({'request': 'authorized_keys', 'as_hash': as_hash, 'basedir': basedir, 'dir': dir_})


@main.command()
@click.argument('bundle', type=click.Path(exists=True, dir_okay=False))
@click.option('--facts', 'facts_file', type=click.Path(exists=True, dir_okay=False),
              help='YAML/JSON file with hostname, fqdn and ipaddress facts')
def apply(bundle, facts_file):
    """Fulfil the request described by a YAML BUNDLE file.

    The bundle holds the same options as the library call, e.g.:

    \b
        request: public
        name: web1
        type: ed25519
        hostkey: true
    """
    try:
        config = KeygenConfig.load(Path(bundle))
        facts = _resolve_facts(facts_file, None, None, None)
    except (SSHKeysError, OSError, yaml.YAMLError) as e:
        click.secho(f"❌ Error: {e}", fg='red', err=True)
        sys.exit(1)

    try:
        _emit(fulfil(config, facts))
    except SSHKeysError as e:
        click.secho(f"❌ Error: {e}", fg='red', err=True)
        sys.exit(1)


if __name__ == '__main__':
    main()
