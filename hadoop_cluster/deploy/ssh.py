"""
SSH connection and remote execution
"""
import os
from pathlib import Path

import paramiko

from hadoop_cluster.errors import CommandError, PreconditionError
from hadoop_cluster.utils.logger import get_logger
from hadoop_cluster.utils.shell import CommandResult

logger = get_logger(__name__)


def user_ssh_dir(username):
    """~<username>/.ssh, resolved through the user database"""
    return Path(os.path.expanduser(f"~{username}")) / '.ssh'


def get_ssh_key_path(username):
    """
    Get the private key used to act as username

    Priority: SSH_KEY_PATH environment variable, then ~<username>/.ssh/id_rsa

    Args:
        username: Service account name

    Returns:
        Path to SSH key
    """
    key_path = os.getenv('SSH_KEY_PATH')
    if key_path:
        path = Path(key_path).expanduser()
        if path.exists():
            return path
        logger.warning(f"SSH_KEY_PATH points to non-existent file: {path}")

    path = user_ssh_dir(username) / 'id_rsa'
    if path.exists():
        return path

    raise PreconditionError(
        f"SSH key not found for {username}: {path}. "
        "Run `prepare` on this node or set SSH_KEY_PATH"
    )


def connect_ssh(host, username, key_file=None, password=None, port=22, known_hosts=None,
                timeout=30):
    """
    Create SSH connection

    Args:
        host: Host address
        username: SSH username
        key_file: Path to SSH key file (ignored when password is given)
        password: Password login instead of key login
        port: SSH port
        known_hosts: known_hosts file; unknown host keys are rejected when set
        timeout: Connect timeout (seconds)

    Returns:
        SSH client
    """
    ssh = paramiko.SSHClient()
    if known_hosts and Path(known_hosts).exists():
        ssh.load_host_keys(str(known_hosts))
        ssh.set_missing_host_key_policy(paramiko.RejectPolicy())
    else:
        ssh.set_missing_host_key_policy(paramiko.AutoAddPolicy())

    connect_args = dict(
        hostname=host,
        username=username,
        port=port,
        timeout=timeout,
        banner_timeout=max(timeout, 30),
        auth_timeout=max(timeout, 30),
        allow_agent=False,
        look_for_keys=False,
    )
    if password is not None:
        connect_args['password'] = password
    else:
        if key_file is None:
            key_file = get_ssh_key_path(username)
        connect_args['key_filename'] = str(key_file)

    try:
        logger.debug(f"Connecting to {username}@{host}")
        ssh.connect(**connect_args)

        # Keep-alive for long rsync/format operations
        transport = ssh.get_transport()
        if transport:
            transport.set_keepalive(30)

        return ssh
    except paramiko.AuthenticationException:
        ssh.close()
        raise CommandError(f"SSH authentication to {username}@{host}", 255)
    except (paramiko.SSHException, OSError) as e:
        ssh.close()
        raise CommandError(f"SSH connection to {host}", 255, str(e))


def execute_remote_command(ssh, command, stdin_data=None, timeout=None, check=True,
                           description=None):
    """
    Execute command on remote host

    Args:
        ssh: SSH client
        command: Command to execute
        stdin_data: Text written to the command's stdin, then EOF
        timeout: Channel timeout (seconds)
        check: Raise CommandError on non-zero exit
        description: Operation name used in errors

    Returns:
        CommandResult
    """
    logger.debug(f"Executing: {command}")

    stdin, stdout, stderr = ssh.exec_command(command, timeout=timeout)
    if stdin_data is not None:
        stdin.write(stdin_data)
        stdin.flush()
        stdin.channel.shutdown_write()

    exit_code = stdout.channel.recv_exit_status()

    output = stdout.read().decode('utf-8', errors='replace')
    error = stderr.read().decode('utf-8', errors='replace')

    result = CommandResult(exit_code, output, error)
    if exit_code != 0:
        logger.debug(f"Command failed (exit code {exit_code}): {error.strip()}")
        if check:
            result.check(description or command)
    return result
