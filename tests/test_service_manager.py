"""
Test Hadoop and Spark History Server lifecycle
"""
import pytest

from conftest import FakeRunner, build_config
from hadoop_cluster.deploy import service_manager
from hadoop_cluster.deploy.service_manager import (
    ClusterState,
    HadoopServiceManager,
    SparkHistoryManager,
    parse_jps,
    service_exports,
)
from hadoop_cluster.errors import CommandError, PreconditionError
from hadoop_cluster.utils.shell import CommandResult

ALL_DAEMONS = '11 NameNode\n12 SecondaryNameNode\n13 ResourceManager\n14 JobHistoryServer\n15 Jps\n'
FAILED = CommandResult(1, '', 'connection refused')


def make_executable(path):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text('#!/bin/sh\n')
    path.chmod(0o755)


def install_tree(root):
    make_executable(root / 'opt' / 'hadoop' / 'bin' / 'hdfs')
    make_executable(root / 'opt' / 'jdk' / 'bin' / 'java')


def mark_formatted(root):
    version = root / 'data' / 'hadoop' / 'name' / 'current' / 'VERSION'
    version.parent.mkdir(parents=True, exist_ok=True)
    version.write_text('namespaceID=1\n')


def hadoop_commands(runner):
    return [call[2] for call in runner.calls if call[0] == 'as_user']


class UnreachableExecutor:
    user = 'hadoop'

    def __init__(self):
        self.closed = False

    def run(self, host, command, check=True, timeout=None, description=None):
        raise CommandError(f"SSH connection to {host}", 255)

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


def test_parse_jps():
    assert parse_jps(ALL_DAEMONS) == {'NameNode', 'SecondaryNameNode', 'ResourceManager',
                                      'JobHistoryServer'}
    assert parse_jps('') == set()


def test_service_exports_order(tmp_path):
    exports = service_exports(build_config(tmp_path))

    assert list(exports) == ['JAVA_HOME', 'HADOOP_HOME', 'HADOOP_CONF_DIR', 'YARN_CONF_DIR',
                             'SPARK_HOME', 'PATH']
    assert exports['PATH'].startswith('$SPARK_HOME/bin:')


def test_state_detection(tmp_path):
    """Test state follows the install tree, format marker and jps"""
    runner = FakeRunner()
    services = HadoopServiceManager(build_config(tmp_path), runner)
    assert services.state() == ClusterState.NOT_INSTALLED

    install_tree(tmp_path)
    assert services.state() == ClusterState.INSTALLED_UNFORMATTED

    mark_formatted(tmp_path)
    assert services.state() == ClusterState.STOPPED

    runner.responses = [('jps', CommandResult(0, '11 NameNode\n', ''))]
    assert services.state() == ClusterState.PARTIALLY_RUNNING

    runner.responses = [('jps', CommandResult(0, ALL_DAEMONS, ''))]
    assert services.state() == ClusterState.RUNNING


def test_format_runs_exactly_once(tmp_path):
    """Test format-if-first-time never formats an already formatted NameNode"""
    runner = FakeRunner()
    services = HadoopServiceManager(build_config(tmp_path), runner)

    assert services.format_if_first_time()
    mark_formatted(tmp_path)
    assert not services.format_if_first_time()
    services.start()

    formats = [c for c in hadoop_commands(runner) if 'namenode -format' in c]
    assert formats == ['hdfs namenode -format -force -nonInteractive']


def test_start_order(tmp_path):
    mark_formatted(tmp_path)
    runner = FakeRunner()

    HadoopServiceManager(build_config(tmp_path), runner).start()

    assert hadoop_commands(runner) == [
        'start-dfs.sh',
        'start-yarn.sh',
        'mapred --daemon start historyserver',
    ]


def test_start_without_jobhistory(tmp_path):
    mark_formatted(tmp_path)
    runner = FakeRunner()

    HadoopServiceManager(build_config(tmp_path, ENABLE_JOBHISTORYSERVER='false'), runner).start()

    assert hadoop_commands(runner) == ['start-dfs.sh', 'start-yarn.sh']


def test_start_failure_propagates(tmp_path):
    mark_formatted(tmp_path)
    runner = FakeRunner([('start-dfs.sh', CommandResult(2, '', 'boom'))])

    with pytest.raises(CommandError) as excinfo:
        HadoopServiceManager(build_config(tmp_path), runner).start()

    assert excinfo.value.exit_code == 2
    assert hadoop_commands(runner) == ['start-dfs.sh']


def test_stop_is_best_effort(tmp_path):
    """Test every stop step runs in reverse order even when one fails"""
    runner = FakeRunner([('stop-yarn.sh', FAILED)])

    HadoopServiceManager(build_config(tmp_path), runner).stop()

    assert hadoop_commands(runner) == [
        'mapred --daemon stop historyserver',
        'stop-yarn.sh',
        'stop-dfs.sh',
    ]


def test_status_never_raises(tmp_path):
    runner = FakeRunner([('jps', FAILED), ('yarn', FAILED)])

    report = HadoopServiceManager(build_config(tmp_path), runner).status()

    assert report == {'jps': False, 'yarn_nodes': False}


def test_health_never_raises(tmp_path):
    """Test health reports failures instead of raising, even for unreachable workers"""
    runner = FakeRunner([('jps', FAILED), ('hdfs', FAILED), ('yarn', FAILED)])
    services = HadoopServiceManager(build_config(tmp_path), runner, UnreachableExecutor())

    report = services.health()

    assert report == {
        'jps': False,
        'jps:worker1': False,
        'jps:worker2': False,
        'hdfs_mkdir': False,
        'hdfs_ls': False,
        'yarn_nodes': False,
    }


def test_health_closes_worker_connections(tmp_path, monkeypatch):
    created = []

    def make_executor(config, connect_timeout=30):
        created.append((UnreachableExecutor(), connect_timeout))
        return created[-1][0]

    monkeypatch.setattr(service_manager, 'RemoteExecutor', make_executor)
    services = HadoopServiceManager(build_config(tmp_path), FakeRunner())

    report = services.health()

    assert report['jps:worker1'] is False
    assert len(created) == 1
    executor, timeout = created[0]
    assert timeout == 5
    assert executor.closed


def test_prerequisites_require_install(tmp_path):
    with pytest.raises(PreconditionError):
        HadoopServiceManager(build_config(tmp_path), FakeRunner()).assert_prerequisites()


def install_spark_tree(root):
    make_executable(root / 'opt' / 'spark' / 'sbin' / 'start-history-server.sh')
    make_executable(root / 'opt' / 'spark' / 'sbin' / 'stop-history-server.sh')


def test_history_start_requires_enabled(tmp_path):
    install_spark_tree(tmp_path)
    config = build_config(tmp_path, ENABLE_SPARK_HISTORY_SERVER='false')

    with pytest.raises(PreconditionError):
        SparkHistoryManager(config, FakeRunner()).start()


def test_history_start_requires_install(tmp_path):
    with pytest.raises(PreconditionError):
        SparkHistoryManager(build_config(tmp_path), FakeRunner()).start()


def test_history_start_requires_master_host(tmp_path):
    install_spark_tree(tmp_path)
    config = build_config(tmp_path, SPARK_HISTORYSERVER_HOSTNAME='worker1')
    runner = FakeRunner()

    with pytest.raises(PreconditionError):
        SparkHistoryManager(config, runner).start()
    assert runner.calls == []


def test_history_start(tmp_path):
    install_spark_tree(tmp_path)
    runner = FakeRunner([('-test -d', FAILED)])

    SparkHistoryManager(build_config(tmp_path), runner).start()

    commands = hadoop_commands(runner)
    assert 'hdfs dfs -mkdir -p /spark-history' in commands
    assert commands[-1] == str(tmp_path / 'opt' / 'spark' / 'sbin' / 'start-history-server.sh')


def test_history_start_skips_eventlog_dir_without_hdfs(tmp_path):
    install_spark_tree(tmp_path)
    runner = FakeRunner([('hdfs dfs -ls', FAILED)])

    SparkHistoryManager(build_config(tmp_path), runner).start()

    assert not any('-mkdir' in c for c in hadoop_commands(runner))


def test_history_status(tmp_path):
    ss_output = (
        'State  Recv-Q Send-Q Local Address:Port Peer Address:Port\n'
        'LISTEN 0      50     *:18080            *:*\n'
        'LISTEN 0      128    0.0.0.0:22         0.0.0.0:*\n'
    )
    runner = FakeRunner([
        ('jps', CommandResult(0, '21 HistoryServer\n', '')),
        ('ss -lnt', CommandResult(0, ss_output, '')),
    ])

    assert SparkHistoryManager(build_config(tmp_path), runner).status() == {
        'running': True,
        'listening': True,
    }


def test_history_stop_is_best_effort(tmp_path):
    install_spark_tree(tmp_path)
    runner = FakeRunner([('stop-history-server.sh', FAILED)])

    SparkHistoryManager(build_config(tmp_path), runner).stop()

    assert len(hadoop_commands(runner)) == 1
