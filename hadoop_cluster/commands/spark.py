"""
Spark command implementation
"""
import shlex
from pathlib import Path

from hadoop_cluster.commands.install import MASTER_PACKAGES, setup_trust
from hadoop_cluster.deploy.config_generator import generate_spark_configs, write_profile_scripts
from hadoop_cluster.deploy.config_writer import ConfigWriter
from hadoop_cluster.deploy.distributor import Distributor, RsyncSyncer, spark_plan
from hadoop_cluster.deploy.hosts import require_master, require_root
from hadoop_cluster.deploy.package_manager import SPARK_MARKER, install_spark
from hadoop_cluster.deploy.remote import RemoteExecutor
from hadoop_cluster.deploy.service_manager import SparkHistoryManager, service_exports
from hadoop_cluster.errors import ConfigError, PreconditionError
from hadoop_cluster.utils.logger import get_logger, log_section
from hadoop_cluster.utils.shell import LocalRunner, apt_install
from hadoop_cluster.utils.validator import validate_config

logger = get_logger(__name__)

ACTIONS = ('install', 'start', 'stop', 'restart', 'status', 'health', 'env', 'shell', 'sparksql',
           'pyspark')
DEFAULT_METASTORE_DIR = '/data/spark/metastore_db'
PROFILE_SCRIPTS = ('/etc/profile.d/java.sh', '/etc/profile.d/hadoop.sh', '/etc/profile.d/spark.sh')


def env_refresh_command():
    """Command an operator pastes to load the cluster environment in the current shell"""
    return ' && '.join(f"source {path}" for path in PROFILE_SCRIPTS)


def install_spark_flow(config, runner, force=False, executor=None):
    log_section(logger, "Step 1: Packages and SSH trust")
    apt_install(runner, MASTER_PACKAGES)
    runner.run(['systemctl', 'enable', '--now', 'ssh'], check=False)
    setup_trust(config, runner)

    log_section(logger, "Step 2: Spark")
    writer = ConfigWriter()
    artifact = install_spark(config, force=force)
    write_profile_scripts(config, writer, ['spark'])
    user = config.hadoop_user
    runner.run(['chown', '-R', f"{user}:{user}", str(artifact.version_dir)], check=False)

    log_section(logger, "Step 3: Spark configuration")
    generate_spark_configs(config, writer)
    SparkHistoryManager(config, runner).prepare_event_log_dirs()

    log_section(logger, "Step 4: Distribution to workers")
    executor = executor or RemoteExecutor(config)
    with executor:
        distributor = Distributor(executor, RsyncSyncer(user, runner))
        distributor.distribute_payloads(config.worker_hostnames, spark_plan(config))
    return artifact


def ensure_spark_installed(config):
    spark_home = Path(config.get_str('SPARK_SYMLINK'))
    if not (spark_home / SPARK_MARKER).exists():
        raise PreconditionError(f"Spark not found at {spark_home}; run `spark install` first")


def open_shell(runner):
    """Interactive bash with the cluster environment loaded"""
    sources = '; '.join(f"source {path} 2>/dev/null || true" for path in PROFILE_SCRIPTS)
    logger.info("Opening a shell with the Spark environment loaded (type exit to leave)...")
    runner.exec(['bash', '-lc', f"{sources}; exec bash"])


def run_spark_sql(config, runner):
    """spark-sql on YARN with a Derby metastore kept in a fixed directory"""
    ensure_spark_installed(config)
    metastore = Path(config.get_str('SPARK_LOCAL_METASTORE_DIR', DEFAULT_METASTORE_DIR))
    metastore.mkdir(parents=True, exist_ok=True)
    user = config.hadoop_user
    runner.run(['chown', '-R', f"{user}:{user}", str(metastore.parent)], check=False)

    connection_url = f"spark.hadoop.javax.jdo.option.ConnectionURL=jdbc:derby:{metastore};create=true"
    command = ' '.join([
        'cd', shlex.quote(str(metastore.parent)), '&&',
        'exec', 'spark-sql', '--master', 'yarn',
        '--conf', 'spark.sql.catalogImplementation=hive',
        '--conf', shlex.quote(connection_url),
    ])
    logger.info("Starting Spark SQL on YARN (Ctrl+D or exit to leave)...")
    runner.exec_as_user(user, command, exports=service_exports(config))


def run_pyspark(config, runner):
    ensure_spark_installed(config)
    logger.info("Starting PySpark on YARN (Ctrl+D or exit() to leave)...")
    runner.exec_as_user(config.hadoop_user, 'exec pyspark --master yarn',
                        exports=service_exports(config))


def run_spark(config, action, force=False, runner=None, executor=None):
    """
    Run a Spark action on the master

    Args:
        config: ClusterConfig
        action: One of ACTIONS
        force: Reinstall over an existing Spark (install only)
        runner: LocalRunner
        executor: RemoteExecutor for distribution

    Returns:
        Report dict for status/health, the refresh command for env, else None
    """
    if action not in ACTIONS:
        raise ConfigError(f"Unknown action: {action} (supported: {'/'.join(ACTIONS)})")

    runner = runner or LocalRunner()
    if action == 'env':
        return env_refresh_command()

    require_root()
    validate_config(config, 'spark')
    require_master(config)

    history = SparkHistoryManager(config, runner)
    if action == 'install':
        install_spark_flow(config, runner, force=force, executor=executor)
    elif action == 'start':
        history.start()
    elif action == 'stop':
        history.stop()
    elif action == 'restart':
        history.restart()
    elif action == 'status':
        return history.status()
    elif action == 'health':
        return history.health()
    elif action == 'shell':
        open_shell(runner)
    elif action == 'sparksql':
        run_spark_sql(config, runner)
    elif action == 'pyspark':
        run_pyspark(config, runner)
    return None
