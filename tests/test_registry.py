import fcntl

import pytest

from sshkeys.errors import StorageError
from sshkeys.registry import (
    HEADER, append_line, contains_key, directory_lock, ensure_file,
    read_authorized_keys, read_known_hosts,
)


def test_ensure_file_writes_header_once(tmp_path):
    path = tmp_path / 'known_hosts'

    ensure_file(path)
    append_line(path, 'web1 ssh-ed25519 AAAA')
    ensure_file(path)

    assert path.read_text() == HEADER + 'web1 ssh-ed25519 AAAA\n'


def test_append_line_keeps_existing_newline(tmp_path):
    path = tmp_path / 'authorized_keys'

    append_line(path, 'ssh-rsa AAAA one\n')
    append_line(path, 'ssh-rsa BBBB two')

    assert path.read_text() == 'ssh-rsa AAAA one\nssh-rsa BBBB two\n'


def test_contains_key_matches_key_field_exactly(tmp_path):
    path = tmp_path / 'known_hosts'
    path.write_text(HEADER + 'web1,10.0.0.5 ssh-ed25519 AAAAkey\n')

    assert contains_key(path, 'ssh-ed25519 AAAAkey') is True
    assert contains_key(path, 'ssh-ed25519 AAAA') is False
    assert contains_key(path, 'ssh-rsa AAAAkey') is False


def test_contains_key_treats_key_as_literal(tmp_path):
    path = tmp_path / 'known_hosts'
    path.write_text('web1 ssh-rsa AB+/cd==\n')

    assert contains_key(path, 'ssh-rsa AB+/cd==') is True
    assert contains_key(path, 'ssh-rsa A.+/cd==') is False


def test_contains_key_missing_file(tmp_path):
    assert contains_key(tmp_path / 'known_hosts', 'ssh-rsa AAAA') is False


def test_read_known_hosts(tmp_path):
    (tmp_path / 'known_hosts').write_text(HEADER + 'web1 ssh-rsa AAAA\n')

    assert read_known_hosts(tmp_path) == HEADER + 'web1 ssh-rsa AAAA\n'


def test_read_known_hosts_missing_file(tmp_path):
    """known_hosts must exist before it can be read"""
    with pytest.raises(StorageError) as exc_info:
        read_known_hosts(tmp_path)

    assert isinstance(exc_info.value, IOError)
    assert isinstance(exc_info.value.__cause__, FileNotFoundError)


def test_read_authorized_keys_missing_file(tmp_path):
    assert read_authorized_keys(tmp_path) == ''
    assert read_authorized_keys(tmp_path, as_hash=True) == {}


def test_read_authorized_keys_raw(tmp_path):
    content = HEADER + 'ssh-rsa AAAA root@web1\n'
    (tmp_path / 'authorized_keys').write_text(content)

    assert read_authorized_keys(tmp_path) == content


def test_read_authorized_keys_as_hash(tmp_path):
    """Should key entries by comment, skipping comments, blanks and malformed lines"""
    (tmp_path / 'authorized_keys').write_text(
        HEADER
        + 'ssh-rsa AAAA root@web1\n'
        + '\n'
        + '# a note\n'
        + 'garbage\n'
        + 'ssh-ed25519 BBBB root@web2\n'
    )

    assert read_authorized_keys(tmp_path, as_hash=True) == {
        'root@web1': {'type': 'ssh-rsa', 'key': 'AAAA', 'name': 'root@web1'},
        'root@web2': {'type': 'ssh-ed25519', 'key': 'BBBB', 'name': 'root@web2'},
    }


def test_read_authorized_keys_duplicate_comment_last_wins(tmp_path):
    (tmp_path / 'authorized_keys').write_text(
        'ssh-rsa AAAA root@web1\n'
        'ssh-rsa BBBB root@web1\n'
    )

    result = read_authorized_keys(tmp_path, as_hash=True)

    assert len(result) == 1
    assert result['root@web1']['key'] == 'BBBB'


def test_read_authorized_keys_without_comment(tmp_path):
    (tmp_path / 'authorized_keys').write_text('ssh-rsa AAAA\n')

    assert read_authorized_keys(tmp_path, as_hash=True) == {
        None: {'type': 'ssh-rsa', 'key': 'AAAA', 'name': None},
    }


def test_directory_lock_released_after_use(tmp_path):
    """The lock is released on exit so later holders do not block"""
    with directory_lock(tmp_path):
        pass
    with directory_lock(tmp_path):
        pass

    assert (tmp_path / '.sshkeys.lock').exists()


def test_directory_lock_released_on_error(tmp_path):
    with pytest.raises(RuntimeError):
        with directory_lock(tmp_path):
            raise RuntimeError('boom')

    with directory_lock(tmp_path):
        pass


def test_directory_lock_excludes_other_holders(tmp_path):
    """A second flock on the lock file fails while the lock is held"""
    with directory_lock(tmp_path):
        with open(tmp_path / '.sshkeys.lock', 'a') as other:
            with pytest.raises(BlockingIOError):
                fcntl.flock(other, fcntl.LOCK_EX | fcntl.LOCK_NB)

    with open(tmp_path / '.sshkeys.lock', 'a') as other:
        fcntl.flock(other, fcntl.LOCK_EX | fcntl.LOCK_NB)
        fcntl.flock(other, fcntl.LOCK_UN)
