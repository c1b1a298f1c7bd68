"""
Hadoop and Spark History Server lifecycle on the master node
"""
import os
import shlex
from enum import Enum
from pathlib import Path

from hadoop_cluster.deploy.hosts import assert_hosts_ready
from hadoop_cluster.deploy.remote import RemoteExecutor
from hadoop_cluster.errors import ClusterError, PreconditionError
from hadoop_cluster.utils.logger import get_logger
from hadoop_cluster.utils.shell import LocalRunner

logger = get_logger(__name__)

HEALTH_CONNECT_TIMEOUT = 5


class ClusterState(Enum):
    NOT_INSTALLED = 'not installed'
    INSTALLED_UNFORMATTED = 'installed, not formatted'
    STOPPED = 'stopped'
    RUNNING = 'running'
    PARTIALLY_RUNNING = 'partially running'


def service_exports(config):
    """
    Environment for running Hadoop/Spark commands as the service account

    Returns:
        Ordered dict of variable name -> value
    """
    exports = {
        'JAVA_HOME': config.get_str('JAVA_DIR'),
        'HADOOP_HOME': config.get_str('HADOOP_SYMLINK'),
        'HADOOP_CONF_DIR': '$HADOOP_HOME/etc/hadoop',
        'YARN_CONF_DIR': '$HADOOP_CONF_DIR',
    }
    path = '$HADOOP_HOME/bin:$HADOOP_HOME/sbin:$JAVA_HOME/bin:$PATH'
    if 'SPARK_SYMLINK' in config:
        exports['SPARK_HOME'] = config.get_str('SPARK_SYMLINK')
        path = '$SPARK_HOME/bin:$SPARK_HOME/sbin:' + path
    exports['PATH'] = path
    return exports


def parse_jps(output):
    """Java process names from `jps` output, without Jps itself"""
    names = set()
    for line in output.splitlines():
        parts = line.split()
        if len(parts) >= 2 and parts[1] != 'Jps':
            names.add(parts[1])
    return names


def _log_output(result):
    for line in (result.stdout or '').splitlines():
        logger.info(f"  {line}")


class ServiceAccount:
    """Runs commands as the service account with the cluster environment"""

    def __init__(self, config, runner=None):
        self.config = config
        self.runner = runner or LocalRunner()
        self.user = config.hadoop_user

    def as_hadoop(self, command, check=True, capture=True, description=None):
        return self.runner.as_user(
            self.user,
            command,
            exports=service_exports(self.config),
            check=check,
            capture=capture,
            description=description or command,
        )

    def jps(self):
        result = self.as_hadoop('jps', check=False)
        if not result.ok:
            logger.warning(f"jps failed: {result.stderr.strip()}")
        return result


class HadoopServiceManager(ServiceAccount):
    """
    Start, stop and inspect HDFS/YARN from the master

    Args:
        config: ClusterConfig
        runner: LocalRunner
        executor: RemoteExecutor used for worker probes (created on demand)
    """

    def __init__(self, config, runner=None, executor=None):
        super().__init__(config, runner)
        self.executor = executor

    @property
    def name_dir(self):
        return Path(self.config.get_str('HDFS_NAME_DIR'))

    @property
    def jobhistory_enabled(self):
        return self.config.get_bool('ENABLE_JOBHISTORYSERVER')

    def expected_daemons(self):
        daemons = {'NameNode', 'ResourceManager'}
        if self.config.get('SECONDARY_NAMENODE_HOSTNAME', self.config.master_hostname) == \
                self.config.master_hostname:
            daemons.add('SecondaryNameNode')
        if self.jobhistory_enabled:
            daemons.add('JobHistoryServer')
        return daemons

    def is_installed(self):
        hadoop = Path(self.config.get_str('HADOOP_SYMLINK'))
        java = Path(self.config.get_str('JAVA_DIR'))
        return (hadoop / 'bin' / 'hdfs').exists() and (java / 'bin' / 'java').exists()

    def is_formatted(self):
        return (self.name_dir / 'current' / 'VERSION').exists()

    def state(self):
        """
        Detect the cluster state from the install tree and master daemons

        Returns:
            ClusterState
        """
        if not self.is_installed():
            return ClusterState.NOT_INSTALLED
        if not self.is_formatted():
            return ClusterState.INSTALLED_UNFORMATTED
        running = parse_jps(self.jps().stdout) & self.expected_daemons()
        if not running:
            return ClusterState.STOPPED
        if running == self.expected_daemons():
            return ClusterState.RUNNING
        return ClusterState.PARTIALLY_RUNNING

    def prepare_data_dirs(self):
        """Create the data directories and hand them to the service account"""
        dirs = [self.config.get_str(key) for key in ('HADOOP_DATA_DIR', 'HDFS_NAME_DIR', 'HDFS_DATA_DIR')]
        for directory in dirs:
            Path(directory).mkdir(parents=True, exist_ok=True)
        owner = f"{self.user}:{self.user}"
        result = self.runner.run(['chown', '-R', owner, *dirs], check=False)
        if not result.ok:
            logger.warning(f"chown {owner} failed: {result.stderr.strip()}")

    def assert_prerequisites(self):
        """
        Raises:
            PreconditionError: If Hadoop/JDK are missing or hosts do not resolve
        """
        if not self.is_installed():
            raise PreconditionError(
                f"Hadoop or JDK not found under {self.config.get_str('HADOOP_SYMLINK')} / "
                f"{self.config.get_str('JAVA_DIR')}; run `install` first"
            )
        assert_hosts_ready(self.config.cluster_hostnames)
        self.prepare_data_dirs()

    def format(self):
        """Format the NameNode unconditionally; destroys HDFS metadata"""
        logger.warning(f"Formatting NameNode, metadata in {self.name_dir} will be wiped")
        self.as_hadoop('hdfs namenode -format -force -nonInteractive',
                       description='NameNode format')
        logger.info("✓ NameNode formatted")

    def format_if_first_time(self):
        """
        Format the NameNode only if it has never been formatted

        Returns:
            True if a format ran
        """
        if self.is_formatted():
            logger.info(f"NameNode already formatted ({self.name_dir}/current/VERSION), skipping")
            return False
        logger.info("NameNode not formatted yet, running hdfs namenode -format")
        self.name_dir.mkdir(parents=True, exist_ok=True)
        self.runner.run(['chown', '-R', f"{self.user}:{self.user}", str(self.name_dir)], check=False)
        self.format()
        return True

    def start(self, skip_format=False):
        if not skip_format:
            self.format_if_first_time()
        logger.info("Starting HDFS (start-dfs.sh)...")
        self.as_hadoop('start-dfs.sh', description='start-dfs.sh')
        logger.info("Starting YARN (start-yarn.sh)...")
        self.as_hadoop('start-yarn.sh', description='start-yarn.sh')
        if self.jobhistory_enabled:
            logger.info("Starting JobHistoryServer...")
            self.as_hadoop('mapred --daemon start historyserver',
                           description='start JobHistoryServer')
        else:
            logger.info("ENABLE_JOBHISTORYSERVER is not true, skipping JobHistoryServer")
        logger.info("✓ Start commands issued; run `health` to confirm daemons are up")

    def stop(self):
        """Stop daemons in reverse start order; failures are logged, not raised"""
        steps = []
        if self.jobhistory_enabled:
            steps.append(('JobHistoryServer', 'mapred --daemon stop historyserver'))
        steps.append(('YARN', 'stop-yarn.sh'))
        steps.append(('HDFS', 'stop-dfs.sh'))
        for name, command in steps:
            logger.info(f"Stopping {name} ({command})...")
            result = self.as_hadoop(command, check=False)
            if not result.ok:
                logger.warning(f"Stopping {name} failed (exit code {result.exit_code}), continuing")
        logger.info("✓ Stop commands issued")

    def restart(self, skip_format=False):
        self.stop()
        self.start(skip_format=skip_format)

    def _yarn_nodes(self):
        logger.info("YARN NodeManagers:")
        result = self.as_hadoop('yarn node -list', check=False)
        _log_output(result)
        if not result.ok:
            logger.warning("yarn node -list failed")
        return result.ok

    def status(self):
        """
        Report master daemons and YARN nodes

        Returns:
            Dict of check name -> passed
        """
        logger.info("========== STATUS ==========")
        logger.info("Master jps:")
        jps = self.jps()
        _log_output(jps)
        report = {'jps': jps.ok, 'yarn_nodes': self._yarn_nodes()}
        logger.info("For a full check run `health`")
        logger.info("========== END STATUS ==========")
        return report

    def _worker_jps(self, executor, host):
        try:
            result = executor.run(host, "bash -lc 'jps || true'", check=False)
        except ClusterError as e:
            logger.warning(f"{host} unreachable: {e}")
            return False
        _log_output(result)
        return result.ok

    def health(self):
        """
        Check daemons on every node and basic HDFS/YARN operations

        Returns:
            Dict of check name -> passed
        """
        logger.info("========== HEALTH CHECK ==========")
        report = {}

        logger.info("Master jps:")
        jps = self.jps()
        _log_output(jps)
        report['jps'] = jps.ok

        executor = self.executor or RemoteExecutor(self.config,
                                                   connect_timeout=HEALTH_CONNECT_TIMEOUT)
        with executor:
            for host in self.config.worker_hostnames:
                logger.info(f"---- {host} jps ----")
                report[f"jps:{host}"] = self._worker_jps(executor, host)

        logger.info("HDFS check: create and list /tmp")
        for name, command in (('hdfs_mkdir', 'hdfs dfs -mkdir -p /tmp'), ('hdfs_ls', 'hdfs dfs -ls /')):
            result = self.as_hadoop(command, check=False)
            _log_output(result)
            if not result.ok:
                logger.warning(f"{command} failed: {result.stderr.strip()}")
            report[name] = result.ok

        report['yarn_nodes'] = self._yarn_nodes()

        failed = [name for name, ok in report.items() if not ok]
        if failed:
            logger.warning(f"Health check problems: {', '.join(failed)}")
        else:
            logger.info("✓ All health checks passed")
        logger.info("========== END HEALTH CHECK ==========")
        return report


class SparkHistoryManager(ServiceAccount):
    """Spark History Server on the master"""

    @property
    def spark_home(self):
        return Path(self.config.get_str('SPARK_SYMLINK'))

    @property
    def eventlog_dir(self):
        return self.config.get_str('SPARK_EVENTLOG_DIR_HDFS')

    @property
    def ui_port(self):
        return self.config.get_int('SPARK_HISTORYSERVER_UI_PORT')

    def ensure_enabled(self):
        if not self.config.get_bool('ENABLE_SPARK_HISTORY_SERVER'):
            raise PreconditionError("ENABLE_SPARK_HISTORY_SERVER is not true; History Server is disabled")

    def ensure_installed(self):
        script = self.spark_home / 'sbin' / 'start-history-server.sh'
        if not os.access(script, os.X_OK):
            raise PreconditionError(f"Spark not found at {self.spark_home}; run `spark install` first")

    def hdfs_available(self):
        return self.as_hadoop('hdfs dfs -ls / >/dev/null 2>&1', check=False).ok

    def ensure_hdfs_eventlog_dir(self):
        """
        Create the HDFS event-log directory if HDFS is up

        Returns:
            True if the directory exists afterwards
        """
        if not self.hdfs_available():
            logger.warning(f"HDFS not reachable, skipping {self.eventlog_dir}; start Hadoop first")
            return False
        quoted = shlex.quote(self.eventlog_dir)
        if self.as_hadoop(f"hdfs dfs -test -d {quoted}", check=False).ok:
            logger.info(f"HDFS eventlog dir exists: {self.eventlog_dir}")
            return True
        logger.info(f"Creating HDFS eventlog dir: {self.eventlog_dir}")
        self.as_hadoop(f"hdfs dfs -mkdir -p {quoted}", description='create HDFS eventlog dir')
        self.as_hadoop(f"hdfs dfs -chmod 1777 {quoted}", check=False)
        return True

    def prepare_event_log_dirs(self):
        """
        Local event-log dir plus HDFS event-log and warehouse dirs (best effort)
        """
        local_dir = Path(self.config.get_str('SPARK_EVENTLOG_DIR_LOCAL'))
        local_dir.mkdir(parents=True, exist_ok=True)
        self.runner.run(['chown', '-R', f"{self.user}:{self.user}", str(local_dir.parent)],
                        check=False)

        hdfs = Path(self.config.get_str('HADOOP_SYMLINK')) / 'bin' / 'hdfs'
        if not os.access(hdfs, os.X_OK):
            logger.info(f"hdfs not found under {hdfs.parent}, skipping HDFS directories")
            return False

        for directory in (self.eventlog_dir, self.config.get_str('SPARK_SQL_WAREHOUSE_DIR')):
            result = self.as_hadoop(f"hdfs dfs -mkdir -p {shlex.quote(directory)}", check=False)
            if not result.ok:
                logger.warning(f"Creating {directory} failed (HDFS down?); retry after `hadoop start`")
                continue
            self.as_hadoop(f"hdfs dfs -chmod 1777 {shlex.quote(directory)}", check=False)
        return True

    def start(self):
        self.ensure_enabled()
        self.ensure_installed()
        history_host = self.config.get_str('SPARK_HISTORYSERVER_HOSTNAME')
        if history_host != self.config.master_hostname:
            raise PreconditionError(
                f"History Server must run on the master ({self.config.master_hostname}), "
                f"SPARK_HISTORYSERVER_HOSTNAME is {history_host}"
            )
        self.ensure_hdfs_eventlog_dir()
        logger.info("Starting Spark History Server...")
        self.as_hadoop(str(self.spark_home / 'sbin' / 'start-history-server.sh'),
                       description='start Spark History Server')
        logger.info("✓ Start command issued")

    def stop(self):
        self.ensure_enabled()
        self.ensure_installed()
        logger.info("Stopping Spark History Server...")
        result = self.as_hadoop(str(self.spark_home / 'sbin' / 'stop-history-server.sh'), check=False)
        if not result.ok:
            logger.warning(f"stop-history-server.sh failed (exit code {result.exit_code})")
        logger.info("✓ Stop command issued")

    def restart(self):
        self.stop()
        self.start()

    def listening(self):
        result = self.runner.run(['ss', '-lnt'], check=False)
        lines = []
        for line in result.stdout.splitlines():
            parts = line.split()
            if len(parts) >= 4 and parts[3].endswith(f":{self.ui_port}"):
                lines.append(line)
        return lines

    def status(self):
        """
        Returns:
            Dict with `running` (HistoryServer in jps) and `listening` (UI port bound)
        """
        logger.info("Master jps:")
        jps = self.jps()
        _log_output(jps)
        running = 'HistoryServer' in parse_jps(jps.stdout)

        logger.info(f"Port {self.ui_port} listeners:")
        lines = self.listening()
        for line in lines:
            logger.info(f"  {line}")
        if not lines:
            logger.warning(f"Nothing listening on port {self.ui_port}")
        return {'running': running, 'listening': bool(lines)}

    def health(self):
        self.ensure_enabled()
        self.ensure_installed()
        logger.info("========== HEALTH CHECK ==========")
        logger.info(f"Checking HDFS eventlog dir: {self.eventlog_dir}")
        result = self.as_hadoop(f"hdfs dfs -ls {shlex.quote(self.eventlog_dir)}", check=False)
        _log_output(result)
        if not result.ok:
            logger.warning("Cannot read the eventlog dir (HDFS down or dir missing)")
        report = {'eventlog_dir': result.ok}
        report.update(self.status())
        logger.info("========== END HEALTH CHECK ==========")
        return report
