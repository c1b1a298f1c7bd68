"""
Hadoop lifecycle command implementation
"""
from hadoop_cluster.deploy.hosts import require_master, require_root
from hadoop_cluster.deploy.service_manager import HadoopServiceManager
from hadoop_cluster.errors import ConfigError
from hadoop_cluster.utils.logger import get_logger
from hadoop_cluster.utils.validator import validate_config

logger = get_logger(__name__)

ACTIONS = ('start', 'stop', 'restart', 'status', 'format', 'health')


def run_hadoop(config, action, runner=None, executor=None):
    """
    Run a lifecycle action on the master

    Args:
        config: ClusterConfig
        action: start, stop, restart, status, format or health
        runner: LocalRunner
        executor: RemoteExecutor for worker probes

    Returns:
        Status/health report for those actions, else None
    """
    if action not in ACTIONS:
        raise ConfigError(f"Unknown action: {action} (supported: {'/'.join(ACTIONS)})")

    require_root()
    validate_config(config, 'hadoop')
    require_master(config)

    services = HadoopServiceManager(config, runner, executor)
    services.assert_prerequisites()
    logger.info(f"Cluster state: {services.state().value}")

    if action == 'start':
        services.start()
    elif action == 'stop':
        services.stop()
    elif action == 'restart':
        services.restart()
    elif action == 'status':
        return services.status()
    elif action == 'format':
        services.format()
    elif action == 'health':
        return services.health()
    return None
