"""
Per-node preparation: packages, identity, network, hosts and SSH keys
"""
import os
import re
import socket
from pathlib import Path

import yaml

from hadoop_cluster.deploy.config_writer import ConfigWriter, ManagedBlock
from hadoop_cluster.deploy.ssh import user_ssh_dir
from hadoop_cluster.deploy.trust import authorize_key, ensure_ssh_dir, generate_keypair
from hadoop_cluster.errors import ConfigError, PreconditionError
from hadoop_cluster.utils.logger import get_logger
from hadoop_cluster.utils.shell import apt_install
from hadoop_cluster.utils.validator import validate_ipv4

logger = get_logger(__name__)

BASE_PACKAGES = ['openssh-server', 'openssh-client', 'rsync', 'curl', 'wget', 'tar', 'net-tools']
NETPLAN_FILE = '/etc/netplan/01-hadoop-cluster.yaml'
HOSTS_FILE = '/etc/hosts'
HOSTS_TAG = 'HADOOP_CLUSTER_HOSTS'

_LOCALHOST_LINES = (
    (re.compile(r'^127\.0\.0\.1\s+localhost', re.MULTILINE), '127.0.0.1\tlocalhost'),
    (re.compile(r'^::1\s+localhost', re.MULTILINE), '::1\tlocalhost ip6-localhost ip6-loopback'),
)


def install_base_packages(runner):
    apt_install(runner, BASE_PACKAGES)
    runner.run(['systemctl', 'enable', '--now', 'ssh'], check=False)
    runner.run(['systemctl', 'restart', 'ssh'], check=False)
    logger.info("✓ SSH service enabled")


def fix_clone_identity(config, runner):
    """
    Regenerate machine-id and SSH host keys copied by a full VM clone

    Runs only when FIX_CLONE_IDENTITY is true.

    Returns:
        True if the identity was regenerated
    """
    if not config.get_bool('FIX_CLONE_IDENTITY'):
        logger.info("FIX_CLONE_IDENTITY is not true, skipping clone identity repair")
        return False

    logger.info("Repairing clone identity: new machine-id and SSH host keys...")
    for path in ('/etc/machine-id', '/var/lib/dbus/machine-id'):
        Path(path).unlink(missing_ok=True)
    runner.run(['systemd-machine-id-setup'], description='systemd-machine-id-setup')

    for key in Path('/etc/ssh').glob('ssh_host_*'):
        key.unlink()
    runner.run(['dpkg-reconfigure', 'openssh-server'], check=False,
               env={'DEBIAN_FRONTEND': 'noninteractive'})
    runner.run(['ssh-keygen', '-A'], check=False)
    runner.run(['systemctl', 'restart', 'ssh'], check=False)
    logger.info("✓ Clone identity repaired")
    return True


def current_hostname(runner):
    result = runner.run(['hostnamectl', '--static'], check=False)
    if result.ok and result.stdout.strip():
        return result.stdout.strip()
    return socket.gethostname()


def set_hostname(runner, desired):
    """
    Returns:
        True if the hostname changed
    """
    current = current_hostname(runner)
    if current == desired:
        logger.info(f"Hostname already {desired}, skipping")
        return False
    logger.info(f"Setting hostname: {current} -> {desired}")
    runner.run(['hostnamectl', 'set-hostname', desired], description='hostnamectl set-hostname')
    return True


def detect_primary_nic(runner):
    """Interface of the default route"""
    result = runner.run(['ip', 'route'], description='ip route')
    for line in result.stdout.splitlines():
        parts = line.split()
        if parts and parts[0] == 'default' and 'dev' in parts:
            return parts[parts.index('dev') + 1]
    raise PreconditionError("Cannot detect the default-route network interface; is the network up?")


def render_netplan(nic, ip, cidr, gateway, dns_servers, renderer='networkd'):
    """
    Netplan YAML for a static IPv4 address on nic

    Args:
        nic: Interface name
        ip: Static IPv4 address
        cidr: Prefix length
        gateway: Default gateway
        dns_servers: Name server addresses
        renderer: networkd or NetworkManager

    Returns:
        YAML text
    """
    document = {
        'network': {
            'version': 2,
            'renderer': renderer,
            'ethernets': {
                nic: {
                    'dhcp4': False,
                    'addresses': [f"{ip}/{cidr}"],
                    'routes': [{'to': 'default', 'via': gateway}],
                    'nameservers': {'addresses': list(dns_servers)},
                },
            },
        },
    }
    return yaml.safe_dump(document, default_flow_style=False, sort_keys=False)


def configure_netplan(runner, nic, ip, cidr, gateway, dns_servers, renderer, writer=None,
                      path=NETPLAN_FILE, apply=True):
    """
    Write the netplan file (mode 600) through the writer and apply it

    Raises:
        ConfigError: If an address is not valid IPv4
    """
    if not validate_ipv4(ip):
        raise ConfigError(f"--ip is not a valid IPv4 address: {ip}")
    if not validate_ipv4(gateway):
        raise ConfigError(f"GATEWAY is not a valid IPv4 address: {gateway}")
    for server in dns_servers:
        if not validate_ipv4(server):
            raise ConfigError(f"DNS server is not a valid IPv4 address: {server}")

    writer = writer or ConfigWriter()
    path = Path(path)
    rendered = render_netplan(nic, ip, cidr, gateway, dns_servers, renderer)
    logger.info(f"Writing netplan: {path} (nic={nic}, ip={ip}/{cidr})")
    writer.update(path, lambda text: rendered)
    os.chmod(path, 0o600)

    if apply:
        logger.info("netplan apply...")
        runner.run(['netplan', 'apply'], description='netplan apply')
        result = runner.run(['ip', '-4', 'addr', 'show', nic], check=False)
        match = re.search(r'inet (\S+)', result.stdout)
        logger.info(f"{nic} IPv4: {match.group(1) if match else 'unknown'}")
    return path


def hosts_block(hostnames, ips):
    """
    Body of the /etc/hosts cluster block

    Raises:
        ConfigError: If the lists differ in length
    """
    if len(hostnames) != len(ips):
        raise ConfigError(
            f"CLUSTER_HOSTNAMES has {len(hostnames)} entries but CLUSTER_IPS has {len(ips)}"
        )
    return '\n'.join(f"{ip}\t{hostname}" for hostname, ip in zip(hostnames, ips))


def ensure_localhost_lines(text):
    """Append the standard localhost entries if they are missing"""
    for pattern, line in _LOCALHOST_LINES:
        if not pattern.search(text):
            if text and not text.endswith('\n'):
                text += '\n'
            text += line + '\n'
    return text


def write_etc_hosts(config, writer=None, hosts_file=HOSTS_FILE):
    """
    Record every cluster node in /etc/hosts inside a managed block
    """
    writer = writer or ConfigWriter()
    block = hosts_block(config.get_list('CLUSTER_HOSTNAMES'), config.get_list('CLUSTER_IPS'))
    logger.info(f"Updating {hosts_file} cluster block...")
    writer.update(hosts_file, ensure_localhost_lines)
    ManagedBlock(Path(hosts_file), HOSTS_TAG).write(block, writer)
    for line in block.splitlines():
        logger.info(f"  {line}")
    return writer


def ensure_user(runner, user):
    """Create the service account with a home directory if it is missing"""
    if runner.run(['id', '-u', user], check=False).ok:
        return False
    logger.info(f"Creating user {user}...")
    runner.run(['useradd', '-m', '-s', '/bin/bash', user], description=f"useradd {user}")
    return True


def prepare_ssh_keys(runner, user):
    """
    Service account keypair and an authorized_keys file (mode 600)

    Returns:
        Path to the private key
    """
    ensure_user(runner, user)
    ssh_dir = ensure_ssh_dir(user_ssh_dir(user), owner=user)
    key_file = ssh_dir / 'id_rsa'
    generate_keypair(key_file, comment=f"{user}@{socket.gethostname()}", owner=user)

    authorized_keys = ssh_dir / 'authorized_keys'
    authorized_keys.touch(exist_ok=True)
    authorize_key(authorized_keys, (ssh_dir / 'id_rsa.pub').read_text(), owner=user)
    return key_file


def summary(runner, config):
    """Log the node's identity and network state after preparation"""
    logger.info("========== SUMMARY ==========")
    logger.info(f"Hostname: {current_hostname(runner)}")
    try:
        nic = detect_primary_nic(runner)
    except PreconditionError as e:
        logger.warning(str(e))
    else:
        result = runner.run(['ip', '-4', 'addr', 'show', nic], check=False)
        match = re.search(r'inet (\S+)', result.stdout)
        logger.info(f"NIC: {nic}, IPv4: {match.group(1) if match else 'unknown'}")
    for hostname in config.get_list('CLUSTER_HOSTNAMES'):
        try:
            address = socket.gethostbyname(hostname)
        except socket.gaierror:
            address = 'unresolved'
        logger.info(f"  {hostname} -> {address}")
    logger.info(f"Service account: {config.hadoop_user}")
    logger.info("========== END SUMMARY ==========")
