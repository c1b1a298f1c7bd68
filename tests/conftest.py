"""
Shared test fixtures
"""
from types import MappingProxyType

import pytest

from hadoop_cluster.config import ClusterConfig, parse_value
from hadoop_cluster.utils.shell import CommandResult

BASE_VALUES = {
    'HADOOP_USER': 'hadoop',
    'MASTER_HOSTNAME': 'master',
    'WORKER1_HOSTNAME': 'worker1',
    'WORKER2_HOSTNAME': 'worker2',
    'CLUSTER_HOSTNAMES': '(master worker1 worker2)',
    'CLUSTER_IPS': '(10.0.0.10 10.0.0.11 10.0.0.12)',
    'DEFAULT_IP_MASTER': '10.0.0.10',
    'DEFAULT_IP_WORKER1': '10.0.0.11',
    'DEFAULT_IP_WORKER2': '10.0.0.12',
    'NET_CIDR': '24',
    'GATEWAY': '10.0.0.1',
    'DNS_SERVERS': '(1.1.1.1 8.8.8.8)',
    'NETPLAN_RENDERER': 'networkd',
    'FIX_CLONE_IDENTITY': 'false',
    'SSH_PUSH_MODE': 'copy-id',
    'FS_DEFAULT_PORT': '9000',
    'HDFS_REPLICATION': '2',
    'SECONDARY_NAMENODE_HOSTNAME': 'master',
    'JOBHISTORYSERVER_HOSTNAME': 'master',
    'MAPREDUCE_JOBHISTORY_ADDRESS_PORT': '10020',
    'MAPREDUCE_JOBHISTORY_WEBAPP_PORT': '19888',
    'ENABLE_JOBHISTORYSERVER': 'true',
    'SPARK_MASTER': 'yarn',
    'SPARK_DEPLOY_MODE_DEFAULT': 'client',
    'ENABLE_SPARK_EVENTLOG': 'true',
    'SPARK_EVENTLOG_DIR_HDFS': '/spark-history',
    'ENABLE_SPARK_HISTORY_SERVER': 'true',
    'SPARK_HISTORYSERVER_HOSTNAME': 'master',
    'SPARK_HISTORYSERVER_UI_PORT': '18080',
    'SPARK_SQL_WAREHOUSE_DIR': '/user/hive/warehouse',
}


def build_config(root=None, **overrides):
    """ClusterConfig for tests; directory keys live under root when given"""
    values = dict(BASE_VALUES)
    if root is not None:
        values.update({
            'INSTALL_BASE': f"{root}/opt",
            'JAVA_DIR': f"{root}/opt/jdk",
            'HADOOP_DIR': f"{root}/opt/hadoop",
            'HADOOP_SYMLINK': f"{root}/opt/hadoop",
            'HADOOP_DATA_DIR': f"{root}/data/hadoop",
            'HDFS_NAME_DIR': f"{root}/data/hadoop/name",
            'HDFS_DATA_DIR': f"{root}/data/hadoop/data",
            'SPARK_DIR': f"{root}/opt/spark",
            'SPARK_SYMLINK': f"{root}/opt/spark",
            'SPARK_EVENTLOG_DIR_LOCAL': f"{root}/data/spark/logs",
            'SPARK_LOCAL_METASTORE_DIR': f"{root}/data/spark/metastore_db",
        })
    values.update(overrides)
    parsed = {key: parse_value(value) for key, value in values.items()}
    return ClusterConfig(MappingProxyType(parsed), source='test.conf')


class FakeRunner:
    """
    Records commands instead of running them

    Responses are matched by substring against the joined argv (or the
    shell command for as_user); the first match wins.
    """

    def __init__(self, responses=None):
        self.calls = []
        self.responses = responses or []
        self.execs = []

    def _respond(self, text, check, description):
        for needle, result in self.responses:
            if needle in text:
                break
        else:
            result = CommandResult(0, '', '')
        if check:
            result.check(description or text)
        return result

    def run(self, argv, check=True, input=None, env=None, cwd=None, capture=True,
            description=None):
        self.calls.append(list(argv))
        return self._respond(' '.join(argv), check, description)

    def as_user(self, user, command, exports=None, check=True, capture=True,
                description=None):
        self.calls.append(['as_user', user, command])
        return self._respond(command, check, description)

    def exec(self, argv):
        self.execs.append(list(argv))

    def exec_as_user(self, user, command, exports=None):
        self.execs.append(['as_user', user, command])

    def commands(self):
        return [' '.join(call) for call in self.calls]


@pytest.fixture
def config():
    return build_config()


@pytest.fixture
def runner():
    return FakeRunner()
