"""
SSH trust between the service accounts of cluster nodes
"""
import os
import shutil
import socket
from pathlib import Path

import paramiko

from hadoop_cluster.config import PUSH_MODE_COPY_ID
from hadoop_cluster.deploy.remote import RemoteScript
from hadoop_cluster.deploy.ssh import connect_ssh, execute_remote_command, user_ssh_dir
from hadoop_cluster.errors import CommandError
from hadoop_cluster.utils.logger import get_logger
from hadoop_cluster.utils.shell import LocalRunner

logger = get_logger(__name__)

KEY_BITS = 4096


def _chown(path, owner):
    if owner:
        shutil.chown(path, owner, owner)


def ensure_ssh_dir(ssh_dir, owner=None):
    ssh_dir = Path(ssh_dir)
    ssh_dir.mkdir(parents=True, exist_ok=True)
    os.chmod(ssh_dir, 0o700)
    _chown(ssh_dir, owner)
    return ssh_dir


def generate_keypair(private_path, comment=None, owner=None, bits=KEY_BITS):
    """
    Create an RSA keypair unless one already exists

    Args:
        private_path: Private key path (public key goes to <path>.pub)
        comment: Comment appended to the public key line
        owner: Account that should own both files
        bits: Key size

    Returns:
        True if a new key was generated
    """
    private_path = Path(private_path)
    public_path = private_path.with_name(private_path.name + '.pub')
    if private_path.exists():
        logger.info(f"SSH key already exists: {private_path}")
        return False

    logger.info(f"Generating RSA {bits} key: {private_path}")
    key = paramiko.RSAKey.generate(bits)
    key.write_private_key_file(str(private_path))
    os.chmod(private_path, 0o600)

    line = f"{key.get_name()} {key.get_base64()}"
    if comment:
        line += f" {comment}"
    public_path.write_text(line + '\n')
    os.chmod(public_path, 0o644)

    _chown(private_path, owner)
    _chown(public_path, owner)
    logger.info(f"✓ SSH keypair created: {private_path}")
    return True


def read_public_key(user):
    path = user_ssh_dir(user) / 'id_rsa.pub'
    return path.read_text().strip()


def _key_identity(line):
    parts = line.split()
    if len(parts) >= 2 and not line.lstrip().startswith('#'):
        return parts[0], parts[1]
    return None


def merge_authorized_keys(text, key_line):
    """
    Add a public key to authorized_keys content without duplicating it

    Keys are compared by type and body; comments and order are kept, and
    repeated copies of any key are dropped.

    Args:
        text: Current authorized_keys content
        key_line: Public key line to authorise

    Returns:
        New content
    """
    seen = set()
    lines = []
    for line in text.splitlines():
        if not line.strip():
            continue
        identity = _key_identity(line)
        if identity is not None:
            if identity in seen:
                continue
            seen.add(identity)
        lines.append(line)

    key_line = key_line.strip()
    if _key_identity(key_line) not in seen:
        lines.append(key_line)
    return '\n'.join(lines) + '\n'


def authorize_key(authorized_keys, key_line, owner=None):
    """Merge key_line into an authorized_keys file (mode 600)"""
    path = Path(authorized_keys)
    current = path.read_text() if path.exists() else ''
    updated = merge_authorized_keys(current, key_line)
    if updated != current:
        path.write_text(updated)
    os.chmod(path, 0o600)
    _chown(path, owner)
    return updated != current


def scan_host_key(host, port=22, timeout=5):
    """
    Fetch a host's SSH server key

    Returns:
        paramiko PKey
    """
    sock = socket.create_connection((host, port), timeout=timeout)
    transport = paramiko.Transport(sock)
    try:
        transport.start_client(timeout=timeout)
        return transport.get_remote_server_key()
    finally:
        transport.close()


def record_host_key(known_hosts, host, key, owner=None):
    """
    Replace any entry for host in known_hosts with a hashed entry for key

    Args:
        known_hosts: known_hosts path
        host: Hostname or address
        key: paramiko PKey
        owner: Account that should own the file
    """
    path = Path(known_hosts)
    host_keys = paramiko.HostKeys()
    if path.exists():
        host_keys.load(str(path))

    while host in host_keys:
        del host_keys[host]

    host_keys.add(paramiko.HostKeys.hash_host(host), key.get_name(), key)
    host_keys.save(str(path))
    os.chmod(path, 0o600)
    _chown(path, owner)


def prepare_known_hosts(user, hosts, scanner=scan_host_key):
    """
    Refresh the service account's known_hosts entries for hosts

    Unreachable hosts are logged and skipped; the later SSH step reports them.

    Args:
        user: Service account
        hosts: Hostnames to record
        scanner: Callable(host) -> PKey
    """
    ssh_dir = ensure_ssh_dir(user_ssh_dir(user), owner=user)
    known_hosts = ssh_dir / 'known_hosts'
    logger.info(f"Refreshing {user} known_hosts: {' '.join(hosts)}")
    for host in hosts:
        try:
            key = scanner(host)
        except (OSError, paramiko.SSHException) as e:
            logger.warning(f"Could not scan host key of {host}: {e}")
            continue
        record_host_key(known_hosts, host, key, owner=user)
        logger.info(f"✓ Host key recorded: {host}")


def authorized_keys_append_script(key_line):
    """Remote script that appends key_line to ~/.ssh/authorized_keys once"""
    quoted = RemoteScript().add('grep', '-qxF', key_line, '.ssh/authorized_keys').render()
    append = RemoteScript().add('echo', key_line).render()
    script = RemoteScript()
    script.add_raw('umask 077')
    script.add('mkdir', '-p', '.ssh')
    script.add('touch', '.ssh/authorized_keys')
    script.add_raw(f"{{ {quoted} || {append} >> .ssh/authorized_keys; }}")
    script.add('chmod', '700', '.ssh')
    script.add('chmod', '600', '.ssh/authorized_keys')
    return script


def push_public_key(config, hosts, runner=None, connector=connect_ssh):
    """
    Authorise the service account's key on each host

    copy-id mode runs ssh-copy-id interactively as the service account;
    sshpass mode logs in with SSH_DEFAULT_PASSWORD through paramiko.

    Args:
        config: ClusterConfig
        hosts: Target hostnames
        runner: LocalRunner
        connector: Factory with connect_ssh's signature
    """
    runner = runner or LocalRunner()
    user = config.hadoop_user
    public_key = user_ssh_dir(user) / 'id_rsa.pub'

    for host in hosts:
        if config.push_mode == PUSH_MODE_COPY_ID:
            logger.info(f"ssh-copy-id {user}@{host} (enter the {user} password when asked)")
            runner.run(
                ['sudo', '-u', user, '-H', 'ssh-copy-id', '-o', 'StrictHostKeyChecking=yes',
                 '-i', str(public_key), f"{user}@{host}"],
                capture=False,
                description=f"ssh-copy-id {user}@{host}",
            )
        else:
            logger.info(f"Pushing {user} public key to {user}@{host} with password login")
            key_line = read_public_key(user)
            ssh = connector(
                host,
                user,
                password=config.sudo_password,
                known_hosts=user_ssh_dir(user) / 'known_hosts',
            )
            try:
                execute_remote_command(
                    ssh,
                    str(authorized_keys_append_script(key_line)),
                    description=f"authorize key on {host}",
                )
            finally:
                ssh.close()
        logger.info(f"✓ Trust established: {user}@{host}")


def verify_trust(config, host, connector=connect_ssh):
    """Key-only login check for user@host"""
    user = config.hadoop_user
    try:
        ssh = connector(host, user, known_hosts=user_ssh_dir(user) / 'known_hosts', timeout=5)
    except CommandError as e:
        logger.warning(f"Key login to {user}@{host} failed: {e}")
        return False
    ssh.close()
    return True


def ensure_self_trust(user, hostnames, scanner=scan_host_key):
    """
    Let the service account SSH into its own node without prompts

    Args:
        user: Service account
        hostnames: Names this node answers to (hostname, 127.0.0.1, localhost)
        scanner: Callable(host) -> PKey
    """
    ssh_dir = ensure_ssh_dir(user_ssh_dir(user), owner=user)
    key_line = (ssh_dir / 'id_rsa.pub').read_text().strip()
    authorize_key(ssh_dir / 'authorized_keys', key_line, owner=user)
    prepare_known_hosts(user, hostnames, scanner=scanner)
    logger.info(f"✓ Self trust configured for {user}")
