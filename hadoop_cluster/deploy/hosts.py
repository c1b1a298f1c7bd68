"""
Node roles and host resolution
"""
import os
import re
import socket
from dataclasses import dataclass

from hadoop_cluster.errors import ConfigError, PreconditionError
from hadoop_cluster.utils.logger import get_logger
from hadoop_cluster.utils.validator import validate_ipv4

logger = get_logger(__name__)

_ROLE = re.compile(r'^(master|worker([1-9]\d*))$')
_WORKER_KEY = re.compile(r'^WORKER(\d+)_HOSTNAME$')


@dataclass(frozen=True)
class NodeRole:
    """Role of a node in the cluster: master or worker<n>"""

    kind: str
    index: int = 0

    @classmethod
    def parse(cls, text):
        """
        Parse a role name such as `master` or `worker2`

        Raises:
            ConfigError: If the text is not a valid role
        """
        match = _ROLE.match(str(text).strip().lower())
        if not match:
            raise ConfigError(f"Invalid role: {text} (expected master or worker<n>, n >= 1)")
        if match.group(2):
            return cls('worker', int(match.group(2)))
        return cls('master')

    @property
    def is_master(self):
        return self.kind == 'master'

    @property
    def config_suffix(self):
        """Key suffix used in cluster.conf, e.g. MASTER or WORKER1"""
        return str(self).upper()

    @property
    def hostname_key(self):
        return f"{self.config_suffix}_HOSTNAME"

    @property
    def ip_key(self):
        return f"DEFAULT_IP_{self.config_suffix}"

    def __str__(self):
        if self.is_master:
            return 'master'
        return f"worker{self.index}"


@dataclass(frozen=True)
class Node:
    role: NodeRole
    hostname: str
    ip: str = None


def cluster_nodes(config):
    """
    All nodes declared in the configuration, master first, workers by index

    Args:
        config: ClusterConfig

    Returns:
        List of Node
    """
    nodes = [Node(NodeRole('master'), config.master_hostname, config.get('DEFAULT_IP_MASTER') or None)]
    for key in sorted(config.values, key=_worker_sort_key):
        match = _WORKER_KEY.match(key)
        if not match or key not in config:
            continue
        role = NodeRole('worker', int(match.group(1)))
        nodes.append(Node(role, config.get_str(key), config.get(role.ip_key) or None))
    return nodes


def _worker_sort_key(key):
    match = _WORKER_KEY.match(key)
    return (0, int(match.group(1))) if match else (1, 0)


def worker_nodes(config):
    return [node for node in cluster_nodes(config) if not node.role.is_master]


def node_for_role(config, role):
    """
    Look up the node for a role

    Raises:
        ConfigError: If the role has no hostname configured
    """
    if isinstance(role, str):
        role = NodeRole.parse(role)
    if role.hostname_key not in config:
        raise ConfigError(f"No {role.hostname_key} configured for role {role}")
    return Node(role, config.get_str(role.hostname_key), config.get(role.ip_key) or None)


def resolve_static_ip(config, role, override=None):
    """
    Pick the static IP for a role: explicit override, else DEFAULT_IP_<ROLE>

    Args:
        config: ClusterConfig
        role: NodeRole or role name
        override: Address given on the command line

    Returns:
        IPv4 address string

    Raises:
        ConfigError: If no address is available or it is not IPv4
    """
    if isinstance(role, str):
        role = NodeRole.parse(role)
    ip = override or config.get(role.ip_key)
    if not ip:
        raise ConfigError(f"No static IP for {role}: pass --ip or set {role.ip_key}")
    if not validate_ipv4(ip):
        raise ConfigError(f"Invalid IPv4 address for {role}: {ip}")
    return ip


def assert_hosts_ready(hostnames):
    """
    Ensure every hostname resolves before remote work starts

    Raises:
        PreconditionError: Naming the first unresolved host
    """
    for hostname in hostnames:
        try:
            socket.getaddrinfo(hostname, None)
        except socket.gaierror:
            raise PreconditionError(
                f"Hostname {hostname} does not resolve; run `prepare` on every node first"
            )
        logger.debug(f"{hostname} resolves")
    return True


def require_master(config):
    """Abort unless this node's hostname is MASTER_HOSTNAME"""
    current = socket.gethostname()
    if current != config.master_hostname:
        raise PreconditionError(
            f"Run this on the master node: hostname is {current}, "
            f"MASTER_HOSTNAME is {config.master_hostname}"
        )
    return True


def require_root():
    """Abort unless running with root privileges"""
    if os.geteuid() != 0:
        raise PreconditionError("Run as root (sudo)")
    return True
