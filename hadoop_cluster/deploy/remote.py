"""
Remote execution as the cluster service account
"""
import shlex

import click

from hadoop_cluster.config import PUSH_MODE_SSHPASS
from hadoop_cluster.deploy.ssh import connect_ssh, execute_remote_command, user_ssh_dir
from hadoop_cluster.utils.logger import get_logger

logger = get_logger(__name__)


class RemoteScript:
    """
    A shell script built from argv steps, joined with `&&`

    Each argv step is quoted with shlex, so paths with spaces, quotes or `$`
    reach the remote shell as single words. Shell operators (redirects,
    pipes, `||`) go through add_raw.
    """

    def __init__(self):
        self.steps = []

    def add(self, *argv):
        self.steps.append(shlex.join(str(arg) for arg in argv))
        return self

    def add_raw(self, fragment):
        self.steps.append(fragment)
        return self

    def extend(self, other):
        self.steps.extend(other.steps)
        return self

    def render(self):
        return ' && '.join(self.steps)

    def __bool__(self):
        return bool(self.steps)

    def __str__(self):
        return self.render()


def sudo_command(script):
    """
    Wrap script text so it runs under sudo with the password read from stdin

    The script is a single quoted argument of `bash -lc`; the password never
    appears in the command line.
    """
    return f"sudo -S -p '' bash -lc {shlex.quote(str(script))}"


def _prompt_password(user, host):
    return click.prompt(f"[sudo] password for {user}@{host}", hide_input=True, err=True)


class RemoteExecutor:
    """
    Runs commands on cluster nodes over the service account trust relation

    Args:
        config: ClusterConfig
        connect_timeout: SSH connect timeout (seconds)
        password_prompt: Callable(user, host) -> password for interactive sudo
        connector: Factory with connect_ssh's signature
    """

    def __init__(self, config, connect_timeout=30, password_prompt=None, connector=None):
        self.config = config
        self.user = config.hadoop_user
        self.connect_timeout = connect_timeout
        self.password_prompt = password_prompt or _prompt_password
        self.connector = connector or connect_ssh
        self._connections = {}
        self._passwords = {}

    def _connection(self, host):
        if host not in self._connections:
            ssh_dir = user_ssh_dir(self.user)
            self._connections[host] = self.connector(
                host,
                self.user,
                key_file=ssh_dir / 'id_rsa',
                known_hosts=ssh_dir / 'known_hosts',
                timeout=self.connect_timeout,
            )
        return self._connections[host]

    def sudo_password(self, host):
        """
        Password for remote sudo on host

        Scripted mode uses SSH_DEFAULT_PASSWORD; interactive mode asks the
        operator once per host per run.
        """
        if self.config.push_mode == PUSH_MODE_SSHPASS:
            return self.config.sudo_password
        if host not in self._passwords:
            self._passwords[host] = self.password_prompt(self.user, host)
        return self._passwords[host]

    def run(self, host, command, check=True, timeout=None, description=None):
        """
        Run command as the service account on host

        Args:
            host: Target hostname
            command: str or RemoteScript
            check: Raise CommandError on non-zero exit
            timeout: Channel timeout (seconds)
            description: Operation name used in errors

        Returns:
            CommandResult
        """
        command = str(command)
        return execute_remote_command(
            self._connection(host),
            command,
            timeout=timeout,
            check=check,
            description=description or f"{command} on {host}",
        )

    def sudo(self, host, script, check=True, timeout=None, description=None):
        """
        Run script as root on host via `sudo -S`, feeding the password on stdin

        Args:
            host: Target hostname
            script: str or RemoteScript
            check: Raise CommandError on non-zero exit
            timeout: Channel timeout (seconds)
            description: Operation name used in errors

        Returns:
            CommandResult
        """
        password = self.sudo_password(host)
        return execute_remote_command(
            self._connection(host),
            sudo_command(script),
            stdin_data=f"{password}\n",
            timeout=timeout,
            check=check,
            description=description or f"remote sudo on {host}",
        )

    def close(self):
        for host, ssh in self._connections.items():
            logger.debug(f"Closing SSH connection to {host}")
            ssh.close()
        self._connections = {}

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
