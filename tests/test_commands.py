"""
Test the per-tool flows
"""
import pytest

from conftest import FakeRunner, build_config
from hadoop_cluster.commands import hadoop as hadoop_command
from hadoop_cluster.commands import install as install_command
from hadoop_cluster.commands import spark as spark_command
from hadoop_cluster.commands.hadoop import run_hadoop
from hadoop_cluster.commands.install import run_install
from hadoop_cluster.commands.prepare import split_dns
from hadoop_cluster.commands.spark import env_refresh_command, run_spark
from hadoop_cluster.deploy import service_manager
from hadoop_cluster.errors import ConfigError, PreconditionError


@pytest.fixture
def on_master(monkeypatch):
    """Run flows as if this were root on the master"""
    for module in (hadoop_command, install_command, spark_command):
        monkeypatch.setattr(module, 'require_root', lambda: True)
        monkeypatch.setattr(module, 'require_master', lambda config: True)
    monkeypatch.setattr(service_manager, 'assert_hosts_ready', lambda hostnames: True)


def install_config(tmp_path):
    return build_config(
        tmp_path,
        JDK_DOWNLOAD_LINK='https://example.invalid/jdk-8u202-linux-x64.tar.gz',
        HADOOP_DOWNLOAD_LINK='https://example.invalid/hadoop-3.3.6.tar.gz',
    )


def make_hadoop_tree(root):
    for path in (root / 'opt' / 'hadoop' / 'bin' / 'hdfs', root / 'opt' / 'jdk' / 'bin' / 'java'):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text('#!/bin/sh\n')
        path.chmod(0o755)
    (root / 'opt' / 'hadoop' / 'etc' / 'hadoop').mkdir(parents=True)


def test_unknown_action_rejected_first():
    with pytest.raises(ConfigError):
        run_hadoop(build_config(), 'explode')
    with pytest.raises(ConfigError):
        run_spark(build_config(), 'explode')


def test_spark_env_needs_no_privileges():
    assert run_spark(build_config(), 'env') == env_refresh_command()
    assert env_refresh_command().split(' && ')[0] == 'source /etc/profile.d/java.sh'


def test_hadoop_status_flow(tmp_path, on_master):
    make_hadoop_tree(tmp_path)
    runner = FakeRunner()

    report = run_hadoop(build_config(tmp_path), 'status', runner=runner)

    assert report == {'jps': True, 'yarn_nodes': True}
    assert (tmp_path / 'data' / 'hadoop' / 'name').is_dir()


def test_hadoop_flow_requires_install(tmp_path, on_master):
    with pytest.raises(PreconditionError):
        run_hadoop(build_config(tmp_path), 'start', runner=FakeRunner())


def test_install_configs_module(tmp_path, on_master):
    """Test a single install step runs without touching the others"""
    make_hadoop_tree(tmp_path)
    runner = FakeRunner()

    run_install(install_config(tmp_path), module='configs', runner=runner)

    etc_dir = tmp_path / 'opt' / 'hadoop' / 'etc' / 'hadoop'
    assert '<value>hdfs://master:9000</value>' in (etc_dir / 'core-site.xml').read_text()
    assert runner.calls == [['chown', '-R', 'hadoop:hadoop', str(etc_dir)]]


def test_install_validates_before_mutation(tmp_path, on_master):
    runner = FakeRunner()

    with pytest.raises(ConfigError):
        run_install(build_config(tmp_path), runner=runner)
    assert runner.calls == []


def test_split_dns():
    assert split_dns('1.1.1.1, 8.8.8.8 9.9.9.9') == ['1.1.1.1', '8.8.8.8', '9.9.9.9']
    assert split_dns('') == []
