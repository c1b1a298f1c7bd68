"""
Configuration validation utilities
"""
import ipaddress
import re

from hadoop_cluster.config import PUSH_MODES, PUSH_MODE_SSHPASS
from hadoop_cluster.errors import ConfigError
from hadoop_cluster.utils.logger import get_logger

logger = get_logger(__name__)

CLUSTER_KEYS = (
    'HADOOP_USER',
    'MASTER_HOSTNAME',
    'WORKER1_HOSTNAME',
    'CLUSTER_HOSTNAMES',
)

# Required keys per tool
REQUIRED_KEYS = {
    'prepare': CLUSTER_KEYS + (
        'DEFAULT_IP_MASTER',
        'NET_CIDR',
        'GATEWAY',
        'NETPLAN_RENDERER',
        'FIX_CLONE_IDENTITY',
        'CLUSTER_IPS',
    ),
    'install': CLUSTER_KEYS + (
        'JDK_DOWNLOAD_LINK',
        'HADOOP_DOWNLOAD_LINK',
        'INSTALL_BASE',
        'JAVA_DIR',
        'HADOOP_DIR',
        'HADOOP_SYMLINK',
        'HADOOP_DATA_DIR',
        'HDFS_NAME_DIR',
        'HDFS_DATA_DIR',
        'FS_DEFAULT_PORT',
        'HDFS_REPLICATION',
        'SECONDARY_NAMENODE_HOSTNAME',
        'JOBHISTORYSERVER_HOSTNAME',
        'MAPREDUCE_JOBHISTORY_ADDRESS_PORT',
        'MAPREDUCE_JOBHISTORY_WEBAPP_PORT',
        'SSH_PUSH_MODE',
    ),
    'hadoop': CLUSTER_KEYS + (
        'HADOOP_SYMLINK',
        'JAVA_DIR',
        'HADOOP_DATA_DIR',
        'HDFS_NAME_DIR',
        'HDFS_DATA_DIR',
    ),
    'spark': CLUSTER_KEYS + (
        'HADOOP_SYMLINK',
        'JAVA_DIR',
        'SSH_PUSH_MODE',
        'SPARK_DOWNLOAD_LINK',
        'SPARK_DIR',
        'SPARK_SYMLINK',
        'SPARK_MASTER',
        'SPARK_DEPLOY_MODE_DEFAULT',
        'ENABLE_SPARK_EVENTLOG',
        'SPARK_EVENTLOG_DIR_LOCAL',
        'SPARK_EVENTLOG_DIR_HDFS',
        'ENABLE_SPARK_HISTORY_SERVER',
        'SPARK_HISTORYSERVER_HOSTNAME',
        'SPARK_HISTORYSERVER_UI_PORT',
        'SPARK_SQL_WAREHOUSE_DIR',
    ),
}

_WORKER_HOSTNAME = re.compile(r'^WORKER(\d+)_HOSTNAME$')


def worker_ip_keys(config):
    """DEFAULT_IP_WORKER<n> key for every configured WORKER<n>_HOSTNAME, in worker order"""
    indexed = []
    for key in config.values:
        match = _WORKER_HOSTNAME.match(key)
        if match and key in config:
            indexed.append((int(match.group(1)), f"DEFAULT_IP_WORKER{match.group(1)}"))
    return [ip_key for _, ip_key in sorted(indexed)]


def validate_ipv4(value):
    """
    Check that value is a dotted-quad IPv4 address

    Args:
        value: Address text

    Returns:
        True if valid
    """
    try:
        ipaddress.IPv4Address(value)
    except ValueError:
        return False
    return True


def validate_config(config, tool):
    """
    Validate configuration completeness for a tool

    Args:
        config: ClusterConfig
        tool: Tool name (prepare, install, hadoop, spark)

    Raises:
        ConfigError: If validation fails

    Returns:
        True if valid
    """
    errors = []

    required = list(REQUIRED_KEYS[tool])
    if tool == 'prepare':
        required += worker_ip_keys(config)
    missing = [key for key in required if key not in config]
    for key in missing:
        errors.append(f"Missing required field: {key}")

    if 'SSH_PUSH_MODE' in config:
        mode = config.get('SSH_PUSH_MODE')
        if mode not in PUSH_MODES:
            errors.append(f"SSH_PUSH_MODE must be one of {'/'.join(PUSH_MODES)}, got: {mode}")
        elif mode == PUSH_MODE_SSHPASS and 'SSH_DEFAULT_PASSWORD' not in config:
            errors.append("SSH_PUSH_MODE=sshpass requires SSH_DEFAULT_PASSWORD")

    if tool == 'prepare' and not missing:
        hostnames = config.get_list('CLUSTER_HOSTNAMES')
        ips = config.get_list('CLUSTER_IPS')
        if len(hostnames) != len(ips):
            errors.append(
                f"CLUSTER_HOSTNAMES has {len(hostnames)} entries but CLUSTER_IPS has {len(ips)}"
            )
        for ip in ips:
            if not validate_ipv4(ip):
                errors.append(f"CLUSTER_IPS entry is not a valid IPv4 address: {ip}")
        for key in ['DEFAULT_IP_MASTER'] + worker_ip_keys(config) + ['GATEWAY']:
            if not validate_ipv4(config.get(key)):
                errors.append(f"{key} is not a valid IPv4 address: {config.get(key)}")

    if tool in ('install', 'hadoop') and not missing:
        for key in ('FS_DEFAULT_PORT', 'HDFS_REPLICATION'):
            if key in config and not str(config.get(key)).isdigit():
                errors.append(f"{key} must be an integer, got: {config.get(key)}")

    if errors:
        for error in errors:
            logger.error(error)
        raise ConfigError("Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors))

    logger.info(f"✓ Configuration valid for {tool}")
    return True
