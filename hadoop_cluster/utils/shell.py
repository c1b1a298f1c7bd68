"""
Local command execution
"""
import os
import shlex
import subprocess
from dataclasses import dataclass

from hadoop_cluster.errors import CommandError
from hadoop_cluster.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Outcome of a local or remote command"""

    exit_code: int
    stdout: str = ''
    stderr: str = ''

    @property
    def ok(self):
        return self.exit_code == 0

    def check(self, description):
        """Raise CommandError unless the command succeeded"""
        if not self.ok:
            raise CommandError(description, self.exit_code, self.stderr)
        return self


def login_shell_script(exports, command):
    """
    Build a bash script that exports variables before running command

    Args:
        exports: Ordered mapping of variable name to value. Values are taken
            literally except for `$VAR` references, which stay expandable.
        command: Shell command text to run after the exports

    Returns:
        Script text for `bash -lc`
    """
    lines = []
    for name, value in exports.items():
        if '$' in value:
            lines.append(f'export {name}="{value}"')
        else:
            lines.append(f"export {name}={shlex.quote(value)}")
    lines.append(command)
    return '; '.join(lines)


class LocalRunner:
    """Runs commands on this node, optionally as another user"""

    def run(self, argv, check=True, input=None, env=None, cwd=None, capture=True,
            description=None):
        """
        Execute a command

        Args:
            argv: Argument list (never passed through a shell)
            check: Raise CommandError on non-zero exit
            input: Text written to stdin
            env: Extra environment variables
            cwd: Working directory
            capture: Capture output; False leaves the terminal attached
            description: Operation name used in errors

        Returns:
            CommandResult
        """
        description = description or ' '.join(argv[:3])
        run_env = None
        if env:
            run_env = dict(os.environ)
            run_env.update(env)

        logger.debug(f"Executing: {shlex.join(argv)}")

        try:
            proc = subprocess.run(
                argv,
                input=input,
                env=run_env,
                cwd=cwd,
                text=True,
                capture_output=capture,
                check=False,
            )
        except FileNotFoundError as e:
            result = CommandResult(127, '', str(e))
        else:
            result = CommandResult(proc.returncode, proc.stdout or '', proc.stderr or '')

        if check:
            result.check(description)
        return result

    def as_user(self, user, command, exports=None, check=True, capture=True,
                description=None):
        """
        Run shell command text as `user` through a login shell

        Args:
            user: Account to run as
            command: Shell command text
            exports: Variables exported before the command
            check: Raise CommandError on non-zero exit
            capture: Capture output
            description: Operation name used in errors

        Returns:
            CommandResult
        """
        script = login_shell_script(exports or {}, command)
        return self.run(
            ['sudo', '-u', user, '-H', 'bash', '-lc', script],
            check=check,
            capture=capture,
            description=description or command,
        )

    def exec_as_user(self, user, command, exports=None):
        """Replace the current process with a login shell running command as user"""
        script = login_shell_script(exports or {}, command)
        self.exec(['sudo', '-u', user, '-H', 'bash', '-lc', script])

    def exec(self, argv):
        """Replace the current process with argv (interactive launchers)"""
        logger.debug(f"Exec: {shlex.join(argv)}")
        os.execvp(argv[0], argv)


def apt_install(runner, packages):
    """
    Install packages with apt-get

    Args:
        runner: LocalRunner
        packages: Package names
    """
    env = {'DEBIAN_FRONTEND': 'noninteractive'}
    logger.info("apt update...")
    runner.run(['apt-get', 'update', '-y'], env=env, description='apt-get update')
    logger.info(f"apt install: {' '.join(packages)} ...")
    runner.run(['apt-get', 'install', '-y', *packages], env=env, description='apt-get install')
