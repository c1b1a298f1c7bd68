"""
Staged distribution of installed trees to worker nodes
"""
import shlex
from dataclasses import dataclass, field
from pathlib import Path

from hadoop_cluster.deploy.remote import RemoteScript
from hadoop_cluster.utils.logger import get_logger
from hadoop_cluster.utils.shell import LocalRunner

logger = get_logger(__name__)

PROFILE_DIR = '/etc/profile.d'


@dataclass(frozen=True)
class Payload:
    """
    A local tree installed at the same path on every worker

    Args:
        name: Sub-directory name inside the staging area
        source: Local tree to copy
        target: Install directory on the worker
        symlink: Stable symlink repointed at target
        owned: chown the target to the service account
    """

    name: str
    source: Path
    target: Path
    symlink: Path = None
    owned: bool = True


@dataclass
class DistributionPlan:
    stage_name: str
    payloads: list
    env_files: list = field(default_factory=list)
    make_dirs: list = field(default_factory=list)
    owned_dirs: list = field(default_factory=list)
    validate: str = None


class RsyncSyncer:
    """Copies local paths to a host as the service account with rsync over ssh"""

    def __init__(self, user, runner=None):
        self.user = user
        self.runner = runner or LocalRunner()

    def sync(self, source, host, dest, delete=False):
        source = str(source)
        if Path(source).is_dir() and not source.endswith('/'):
            source += '/'
        argv = ['sudo', '-u', self.user, '-H', 'rsync', '-az', '--protect-args']
        if delete:
            argv.append('--delete')
        argv += [source, f"{self.user}@{host}:{dest}"]
        return self.runner.run(argv, description=f"rsync {source} to {host}")


def finalize_script(user, stage, plan):
    """
    Root script that moves staged content into place on a worker

    Args:
        user: Service account
        stage: Absolute staging directory on the worker
        plan: DistributionPlan

    Returns:
        RemoteScript
    """
    script = RemoteScript()
    if plan.make_dirs or plan.owned_dirs:
        script.add('mkdir', '-p', *plan.make_dirs, *plan.owned_dirs)

    for payload in plan.payloads:
        target = str(payload.target)
        script.add('rm', '-rf', target)
        script.add('mkdir', '-p', target)
        script.add('rsync', '-a', '--delete', f"{stage}/{payload.name}/", f"{target}/")
        if payload.symlink:
            script.add('rm', '-f', str(payload.symlink))
            script.add('ln', '-s', target, str(payload.symlink))

    for env_file in plan.env_files:
        name = Path(env_file).name
        destination = f"{PROFILE_DIR}/{name}"
        script.add('mv', f"{stage}/{name}", destination)
        script.add('chmod', '644', destination)

    quoted_user = shlex.quote(user)
    script.add_raw(
        f"{{ id -u {quoted_user} >/dev/null 2>&1 || useradd -m -s /bin/bash {quoted_user}; }}"
    )

    owned = [str(payload.target) for payload in plan.payloads if payload.owned]
    owned += [str(path) for path in plan.owned_dirs]
    if owned:
        script.add('chown', '-R', f"{user}:{user}", *owned)
    return script


class Distributor:
    """
    Pushes installed trees and profile scripts to workers, one at a time

    Args:
        executor: RemoteExecutor
        syncer: RsyncSyncer
    """

    def __init__(self, executor, syncer):
        self.executor = executor
        self.syncer = syncer

    @property
    def user(self):
        return self.executor.user

    def _stage(self, host, stage_name):
        script = RemoteScript().add('mkdir', '-p', stage_name).add('cd', stage_name).add('pwd')
        result = self.executor.run(host, script, description=f"create staging dir on {host}")
        return result.stdout.strip()

    def distribute_to_host(self, host, plan):
        logger.info(f"=== Distributing to {host} ===")
        stage = self._stage(host, plan.stage_name)

        for payload in plan.payloads:
            logger.info(f"rsync {payload.source} -> {host}:{stage}/{payload.name}")
            self.syncer.sync(payload.source, host, f"{stage}/{payload.name}/", delete=True)

        for env_file in plan.env_files:
            name = Path(env_file).name
            logger.info(f"rsync {env_file} -> {host}:{stage}/{name}")
            self.syncer.sync(env_file, host, f"{stage}/{name}")

        logger.info(f"Installing staged files on {host} (sudo)")
        self.executor.sudo(
            host,
            finalize_script(self.user, stage, plan),
            description=f"install staged files on {host}",
        )

        if plan.validate:
            result = self.executor.run(
                host,
                f"bash -lc {shlex.quote(plan.validate)}",
                check=False,
            )
            if not result.ok:
                logger.warning(f"Validation on {host} failed; check {PROFILE_DIR} on that node")

        logger.info(f"✓ {host} done")

    def distribute_payloads(self, hosts, plan):
        """
        Distribute a plan to hosts in order; the first failure stops the run

        Args:
            hosts: Worker hostnames
            plan: DistributionPlan
        """
        for host in hosts:
            self.distribute_to_host(host, plan)

    def distribute(self, local_install_dir, remote_hosts, remote_target_path, env_file,
                   symlink=None):
        """
        Distribute one installed tree and its profile script

        Args:
            local_install_dir: Local tree
            remote_hosts: Worker hostnames
            remote_target_path: Install directory on the workers
            env_file: /etc/profile.d script to ship
            symlink: Stable symlink to repoint on the workers
        """
        name = Path(remote_target_path).name
        plan = DistributionPlan(
            stage_name=f".stage_{name}",
            payloads=[Payload(name, Path(local_install_dir), Path(remote_target_path), symlink)],
            env_files=[env_file] if env_file else [],
        )
        self.distribute_payloads(remote_hosts, plan)


def hadoop_plan(config):
    """JDK + Hadoop distribution, with data directories created and owned"""
    java_dir = Path(config.get_str('JAVA_DIR'))
    hadoop_link = Path(config.get_str('HADOOP_SYMLINK'))
    java_target = java_dir.resolve()
    hadoop_target = hadoop_link.resolve()
    return DistributionPlan(
        stage_name='.stage_hadoop',
        payloads=[
            Payload('jdk', java_target, java_target, java_dir if java_dir != java_target else None,
                    owned=False),
            Payload('hadoop', hadoop_target, hadoop_target, hadoop_link),
        ],
        env_files=[f"{PROFILE_DIR}/java.sh", f"{PROFILE_DIR}/hadoop.sh"],
        make_dirs=[config.get_str('INSTALL_BASE')],
        owned_dirs=[
            config.get_str('HADOOP_DATA_DIR'),
            config.get_str('HDFS_NAME_DIR'),
            config.get_str('HDFS_DATA_DIR'),
        ],
        validate=(
            f"source {PROFILE_DIR}/java.sh; source {PROFILE_DIR}/hadoop.sh; "
            "command -v java >/dev/null && command -v hadoop >/dev/null"
        ),
    )


def spark_plan(config):
    spark_link = Path(config.get_str('SPARK_SYMLINK'))
    spark_target = spark_link.resolve()
    return DistributionPlan(
        stage_name='.stage_spark',
        payloads=[Payload('spark', spark_target, spark_target, spark_link)],
        env_files=[f"{PROFILE_DIR}/spark.sh"],
        owned_dirs=[config.get_str('SPARK_EVENTLOG_DIR_LOCAL')],
        validate=f"source {PROFILE_DIR}/spark.sh; command -v spark-submit >/dev/null",
    )
