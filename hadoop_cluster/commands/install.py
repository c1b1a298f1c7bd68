"""
Install command implementation
"""
from hadoop_cluster.deploy.config_generator import (
    generate_hadoop_configs,
    hadoop_conf_dir,
    write_profile_scripts,
)
from hadoop_cluster.deploy.config_writer import ConfigWriter
from hadoop_cluster.deploy.distributor import Distributor, RsyncSyncer, hadoop_plan
from hadoop_cluster.deploy.hosts import assert_hosts_ready, require_master, require_root
from hadoop_cluster.deploy.node_initializer import ensure_user
from hadoop_cluster.deploy.package_manager import install_hadoop, install_jdk
from hadoop_cluster.deploy.remote import RemoteExecutor
from hadoop_cluster.deploy.service_manager import HadoopServiceManager
from hadoop_cluster.deploy.trust import prepare_known_hosts, push_public_key, verify_trust
from hadoop_cluster.utils.logger import get_logger, log_section
from hadoop_cluster.utils.shell import LocalRunner, apt_install
from hadoop_cluster.utils.validator import validate_config

logger = get_logger(__name__)

MASTER_PACKAGES = ['openssh-client', 'openssh-server', 'rsync', 'curl', 'wget', 'tar',
                   'ca-certificates']
MODULES = ('ssh', 'jdk', 'hadoop', 'configs', 'distribute')


def setup_trust(config, runner):
    """Service account trust from the master to every worker"""
    user = config.hadoop_user
    workers = config.worker_hostnames
    assert_hosts_ready(config.cluster_hostnames)
    ensure_user(runner, user)
    prepare_known_hosts(user, workers)
    push_public_key(config, workers, runner=runner)
    for host in workers:
        if not verify_trust(config, host):
            logger.warning(f"Key login to {user}@{host} still fails")


def install_java(config, writer, force=False):
    artifact = install_jdk(config, force=force)
    write_profile_scripts(config, writer, ['java'])
    return artifact


def install_hadoop_local(config, runner, writer, force=False):
    artifact = install_hadoop(config, force=force)
    write_profile_scripts(config, writer, ['hadoop'])
    user = config.hadoop_user
    runner.run(['chown', '-R', f"{user}:{user}", str(artifact.version_dir)], check=False)
    return artifact


def configure_hadoop(config, runner, writer):
    generate_hadoop_configs(config, writer)
    user = config.hadoop_user
    runner.run(['chown', '-R', f"{user}:{user}", str(hadoop_conf_dir(config))], check=False)


def distribute_hadoop(config, runner, executor=None):
    executor = executor or RemoteExecutor(config)
    with executor:
        distributor = Distributor(executor, RsyncSyncer(config.hadoop_user, runner))
        distributor.distribute_payloads(config.worker_hostnames, hadoop_plan(config))


def run_install(config, force=False, skip_format=False, module=None, runner=None, executor=None):
    """
    Install, configure and distribute JDK + Hadoop from the master

    Args:
        config: ClusterConfig
        force: Re-extract artifacts over existing installs
        skip_format: Do not format the NameNode at the end
        module: Run only one step (ssh, jdk, hadoop, configs, distribute)
        runner: LocalRunner
        executor: RemoteExecutor for distribution
    """
    runner = runner or LocalRunner()
    require_root()
    validate_config(config, 'install')
    require_master(config)
    writer = ConfigWriter()

    if module == 'ssh':
        setup_trust(config, runner)
    elif module == 'jdk':
        install_java(config, writer, force)
    elif module == 'hadoop':
        install_hadoop_local(config, runner, writer, force)
    elif module == 'configs':
        configure_hadoop(config, runner, writer)
    elif module == 'distribute':
        assert_hosts_ready(config.cluster_hostnames)
        distribute_hadoop(config, runner, executor)
    else:
        log_section(logger, "Step 1: Packages and SSH trust")
        apt_install(runner, MASTER_PACKAGES)
        runner.run(['systemctl', 'enable', '--now', 'ssh'], check=False)
        setup_trust(config, runner)

        log_section(logger, "Step 2: JDK and Hadoop")
        install_java(config, writer, force)
        install_hadoop_local(config, runner, writer, force)

        log_section(logger, "Step 3: Hadoop configuration")
        services = HadoopServiceManager(config, runner)
        services.prepare_data_dirs()
        configure_hadoop(config, runner, writer)

        log_section(logger, "Step 4: Distribution to workers")
        distribute_hadoop(config, runner, executor)

        log_section(logger, "Step 5: NameNode format")
        if skip_format:
            logger.warning("--skip-format given, NameNode not formatted")
        else:
            services.format_if_first_time()

    if writer.backups:
        logger.info(f"Backups written: {len(writer.backups)}")
    logger.info(f"✓ install{' --module ' + module if module else ''} done")
