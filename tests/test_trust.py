"""
Test SSH trust establishment
"""
import shlex
import stat

import paramiko
import pytest

from conftest import FakeRunner, build_config
from hadoop_cluster.deploy import trust
from hadoop_cluster.deploy.trust import (
    authorized_keys_append_script,
    ensure_self_trust,
    generate_keypair,
    merge_authorized_keys,
    prepare_known_hosts,
    push_public_key,
    record_host_key,
    verify_trust,
)
from hadoop_cluster.errors import CommandError

KEY_A = 'ssh-rsa AAAAB3NzaC1yc2EAAAAA hadoop@master'
KEY_B = 'ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAA admin@laptop'


@pytest.fixture
def ssh_home(tmp_path, monkeypatch):
    """Point the service account's ~/.ssh at a temp dir and skip chown"""
    ssh_dir = tmp_path / 'home' / '.ssh'
    monkeypatch.setattr(trust, 'user_ssh_dir', lambda user: ssh_dir)
    monkeypatch.setattr(trust, '_chown', lambda path, owner: None)
    return ssh_dir


@pytest.fixture(scope='module')
def host_keys():
    return paramiko.RSAKey.generate(1024), paramiko.RSAKey.generate(1024)


def test_merge_authorized_keys_deduplicates():
    """Test re-authorising a key keeps one copy and preserves the rest"""
    text = f"# managed by hand\n{KEY_A}\n{KEY_B}\n\nssh-rsa AAAAB3NzaC1yc2EAAAAA other-comment\n"

    merged = merge_authorized_keys(text, KEY_A)

    assert merged == f"# managed by hand\n{KEY_A}\n{KEY_B}\n"
    assert merge_authorized_keys(merged, KEY_A) == merged


def test_merge_authorized_keys_appends_new_key():
    assert merge_authorized_keys(f"{KEY_B}\n", KEY_A) == f"{KEY_B}\n{KEY_A}\n"
    assert merge_authorized_keys('', KEY_A) == f"{KEY_A}\n"


def test_generate_keypair(tmp_path):
    private = tmp_path / 'id_rsa'

    assert generate_keypair(private, comment='hadoop@master', bits=1024)
    assert not generate_keypair(private, bits=1024)

    public = (tmp_path / 'id_rsa.pub').read_text()
    assert public.startswith('ssh-rsa ')
    assert public.rstrip().endswith('hadoop@master')
    assert stat.S_IMODE(private.stat().st_mode) == 0o600
    assert isinstance(paramiko.RSAKey.from_private_key_file(str(private)), paramiko.RSAKey)


def test_record_host_key_replaces_old_entry(tmp_path, host_keys):
    """Test a re-scanned host ends up with exactly one hashed entry"""
    old, new = host_keys
    known_hosts = tmp_path / 'known_hosts'

    record_host_key(known_hosts, 'worker1', old)
    record_host_key(known_hosts, 'worker1', new)

    loaded = paramiko.HostKeys(str(known_hosts))
    assert loaded.lookup('worker1')['ssh-rsa'] == new
    assert len(known_hosts.read_text().splitlines()) == 1
    assert 'worker1' not in known_hosts.read_text()
    assert stat.S_IMODE(known_hosts.stat().st_mode) == 0o600


def test_prepare_known_hosts_skips_unreachable(ssh_home, host_keys):
    key = host_keys[0]

    def scanner(host):
        if host == 'worker2':
            raise OSError('no route to host')
        return key

    prepare_known_hosts('hadoop', ['worker1', 'worker2'], scanner=scanner)

    loaded = paramiko.HostKeys(str(ssh_home / 'known_hosts'))
    assert loaded.lookup('worker1') is not None
    assert loaded.lookup('worker2') is None


def test_ensure_self_trust(ssh_home, host_keys):
    ssh_home.mkdir(parents=True)
    (ssh_home / 'id_rsa.pub').write_text(KEY_A + '\n')

    ensure_self_trust('hadoop', ['master', 'localhost'], scanner=lambda host: host_keys[0])
    ensure_self_trust('hadoop', ['master', 'localhost'], scanner=lambda host: host_keys[0])

    assert (ssh_home / 'authorized_keys').read_text() == KEY_A + '\n'
    loaded = paramiko.HostKeys(str(ssh_home / 'known_hosts'))
    assert loaded.lookup('localhost') is not None
    assert len((ssh_home / 'known_hosts').read_text().splitlines()) == 2


def test_append_script_quotes_key():
    key_line = "ssh-rsa AAAA it's $me"
    steps = authorized_keys_append_script(key_line).steps

    guarded = steps[3]
    assert guarded.startswith('{ ') and guarded.endswith('; }')
    grep, echo = guarded[2:-3].split(' || ')
    assert shlex.split(grep) == ['grep', '-qxF', key_line, '.ssh/authorized_keys']
    assert shlex.split(echo) == ['echo', key_line, '>>', '.ssh/authorized_keys']


def test_push_public_key_copy_id(ssh_home):
    runner = FakeRunner()

    push_public_key(build_config(), ['worker1', 'worker2'], runner=runner)

    assert runner.calls == [
        ['sudo', '-u', 'hadoop', '-H', 'ssh-copy-id', '-o', 'StrictHostKeyChecking=yes',
         '-i', str(ssh_home / 'id_rsa.pub'), f"hadoop@{host}"]
        for host in ('worker1', 'worker2')
    ]


class RecordingSSH:
    def __init__(self):
        self.commands = []
        self.closed = False

    def exec_command(self, command, timeout=None):
        self.commands.append(command)
        channel = type('Channel', (), {'recv_exit_status': lambda self: 0})()
        stream = type('Stream', (), {'channel': channel, 'read': lambda self: b''})()
        return stream, stream, stream

    def close(self):
        self.closed = True


def test_push_public_key_sshpass(ssh_home):
    ssh_home.mkdir(parents=True)
    (ssh_home / 'id_rsa.pub').write_text(KEY_A + '\n')
    logins = []
    clients = []

    def connector(host, user, password=None, known_hosts=None):
        logins.append((host, user, password))
        clients.append(RecordingSSH())
        return clients[-1]

    config = build_config(SSH_PUSH_MODE='sshpass', SSH_DEFAULT_PASSWORD='pw')
    push_public_key(config, ['worker1'], runner=FakeRunner(), connector=connector)

    assert logins == [('worker1', 'hadoop', 'pw')]
    assert 'authorized_keys' in clients[0].commands[0]
    assert 'pw' not in shlex.split(clients[0].commands[0])
    assert clients[0].closed


def test_verify_trust(ssh_home):
    def refused(host, user, known_hosts=None, timeout=30):
        raise CommandError(f"SSH authentication to {user}@{host}", 255)

    def accepted(host, user, known_hosts=None, timeout=30):
        return RecordingSSH()

    assert not verify_trust(build_config(), 'worker1', connector=refused)
    assert verify_trust(build_config(), 'worker1', connector=accepted)
