"""
Exception types raised by cluster operations
"""


class ClusterError(RuntimeError):
    """Base class for cluster bootstrap failures."""

    exit_code = 1


class ConfigError(ClusterError):
    """Raised when cluster.conf is missing, unreadable or incomplete."""


class PreconditionError(ClusterError):
    """Raised when the node is not in a state where the action may run."""


class ConfigWriteError(ClusterError):
    """Raised when a managed file cannot be patched without corrupting it."""


class DownloadError(ClusterError):
    """Raised when an artifact cannot be fetched."""


class InstallError(ClusterError):
    """Raised when an artifact archive or install tree is unusable."""


class CommandError(ClusterError):
    """Raised when a local or remote command exits non-zero."""

    def __init__(self, description, exit_code, stderr=''):
        self.description = description
        self.exit_code = exit_code or 1
        self.stderr = stderr
        message = f"{description} failed (exit code {exit_code})"
        if stderr:
            message += f": {stderr.strip()}"
        super().__init__(message)
