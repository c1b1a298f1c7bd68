"""
Cluster deployment modules
"""

# Configuration writing
from .config_writer import (
    ConfigWriter,
    ManagedBlock,
    upsert_property,
    upsert_marker_block
)

# Configuration generators
from .config_generator import (
    generate_hadoop_configs,
    generate_spark_configs,
    write_profile_scripts
)

# Artifact installation
from .package_manager import (
    InstalledArtifact,
    ensure_installed,
    install_jdk,
    install_hadoop,
    install_spark
)

# Hosts and node preparation
from .hosts import (
    NodeRole,
    cluster_nodes,
    node_for_role,
    resolve_static_ip,
    assert_hosts_ready
)
from .node_initializer import (
    configure_netplan,
    write_etc_hosts,
    prepare_ssh_keys
)

# Trust, remote execution and distribution
from .trust import (
    merge_authorized_keys,
    prepare_known_hosts,
    push_public_key
)
from .remote import RemoteExecutor, RemoteScript
from .distributor import Distributor, DistributionPlan, Payload, RsyncSyncer

# Service management
from .service_manager import (
    ClusterState,
    HadoopServiceManager,
    SparkHistoryManager
)

__all__ = [
    'ConfigWriter',
    'ManagedBlock',
    'upsert_property',
    'upsert_marker_block',
    'generate_hadoop_configs',
    'generate_spark_configs',
    'write_profile_scripts',
    'InstalledArtifact',
    'ensure_installed',
    'install_jdk',
    'install_hadoop',
    'install_spark',
    'NodeRole',
    'cluster_nodes',
    'node_for_role',
    'resolve_static_ip',
    'assert_hosts_ready',
    'configure_netplan',
    'write_etc_hosts',
    'prepare_ssh_keys',
    'merge_authorized_keys',
    'prepare_known_hosts',
    'push_public_key',
    'RemoteExecutor',
    'RemoteScript',
    'Distributor',
    'DistributionPlan',
    'Payload',
    'RsyncSyncer',
    'ClusterState',
    'HadoopServiceManager',
    'SparkHistoryManager'
]
