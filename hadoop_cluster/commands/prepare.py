"""
Prepare command implementation
"""
import re

from hadoop_cluster.deploy.config_writer import ConfigWriter
from hadoop_cluster.deploy.hosts import NodeRole, node_for_role, require_root, resolve_static_ip
from hadoop_cluster.deploy.node_initializer import (
    configure_netplan,
    detect_primary_nic,
    fix_clone_identity,
    install_base_packages,
    prepare_ssh_keys,
    set_hostname,
    summary,
    write_etc_hosts,
)
from hadoop_cluster.deploy.trust import ensure_self_trust
from hadoop_cluster.utils.logger import get_logger, log_section
from hadoop_cluster.utils.shell import LocalRunner
from hadoop_cluster.utils.validator import validate_config

logger = get_logger(__name__)


def split_dns(value):
    return [item for item in re.split(r'[,\s]+', value or '') if item]


def prepare_node(config, role, ip=None, hostname=None, cidr=None, gateway=None, dns=None,
                 runner=None, apply_network=True):
    """
    Prepare this node to join the cluster

    Args:
        config: ClusterConfig
        role: master or worker<n>
        ip: Static IP override (default DEFAULT_IP_<ROLE>)
        hostname: Hostname override
        cidr: NET_CIDR override
        gateway: GATEWAY override
        dns: Comma separated DNS_SERVERS override
        runner: LocalRunner
        apply_network: Run `netplan apply`

    Returns:
        NodeRole prepared
    """
    runner = runner or LocalRunner()
    require_root()
    validate_config(config, 'prepare')

    role = NodeRole.parse(role)
    static_ip = resolve_static_ip(config, role, ip)
    if not ip:
        logger.info(f"No --ip given, using {role.ip_key}={static_ip}")
    desired_hostname = hostname or node_for_role(config, role).hostname
    dns_servers = split_dns(dns) if dns else config.get_list('DNS_SERVERS', [])
    writer = ConfigWriter()

    log_section(logger, f"Step 1: Base packages ({role})")
    install_base_packages(runner)
    fix_clone_identity(config, runner)

    log_section(logger, "Step 2: Hostname and network")
    set_hostname(runner, desired_hostname)
    nic = detect_primary_nic(runner)
    configure_netplan(
        runner,
        nic,
        static_ip,
        cidr or config.get_str('NET_CIDR'),
        gateway or config.get_str('GATEWAY'),
        dns_servers,
        config.get_str('NETPLAN_RENDERER'),
        writer=writer,
        apply=apply_network,
    )
    write_etc_hosts(config, writer)

    log_section(logger, "Step 3: Service account SSH keys")
    user = config.hadoop_user
    prepare_ssh_keys(runner, user)
    ensure_self_trust(user, [desired_hostname, '127.0.0.1', 'localhost'])

    summary(runner, config)
    logger.info(f"✓ Node prepared as {role} ({desired_hostname}, {static_ip})")
    return role
