"""
Test the command line interface
"""
import logging

import pytest
from click.testing import CliRunner

from cli import cli
from hadoop_cluster.commands import hadoop as hadoop_command
from hadoop_cluster.commands import install as install_command
from hadoop_cluster.commands import prepare as prepare_command
from hadoop_cluster.errors import CommandError


@pytest.fixture(autouse=True)
def log_dir(tmp_path, monkeypatch):
    monkeypatch.setenv('HADOOP_CLUSTER_LOG_DIR', str(tmp_path / 'logs'))
    yield tmp_path / 'logs'
    logger = logging.getLogger('hadoop_cluster')
    for handler in logger.handlers:
        handler.close()
    logger.handlers = []


@pytest.fixture
def conf(tmp_path):
    path = tmp_path / 'cluster.conf'
    path.write_text('HADOOP_USER=hadoop\nMASTER_HOSTNAME=master\nSSH_DEFAULT_PASSWORD=hunter2\n')
    return str(path)


@pytest.fixture
def calls(monkeypatch):
    recorded = []

    def fake_run_hadoop(config, action, runner=None, executor=None):
        recorded.append(action)

    monkeypatch.setattr(hadoop_command, 'run_hadoop', fake_run_hadoop)
    return recorded


def test_show_config_masks_password(conf):
    result = CliRunner().invoke(cli, ['show-config', '--conf', conf])

    assert result.exit_code == 0
    assert '"HADOOP_USER": "hadoop"' in result.output
    assert '"SSH_DEFAULT_PASSWORD": "***MASKED***"' in result.output
    assert 'hunter2' not in result.output


def test_missing_config_exits_non_zero(tmp_path):
    result = CliRunner().invoke(cli, ['show-config', '--conf', str(tmp_path / 'missing.conf')])

    assert result.exit_code == 1


def test_hadoop_action_dispatch(conf, calls, log_dir):
    result = CliRunner().invoke(cli, ['hadoop', 'status', '--conf', conf])

    assert result.exit_code == 0
    assert calls == ['status']
    assert (log_dir / 'hadoop-deploy-hadoop.log').exists()


def test_hadoop_menu(conf, calls):
    """Test a missing action shows the numbered menu"""
    result = CliRunner().invoke(cli, ['hadoop', '--conf', conf], input='4\n')

    assert result.exit_code == 0
    assert '4) status' in result.output
    assert calls == ['status']


def test_hadoop_format_needs_confirmation(conf, calls):
    result = CliRunner().invoke(cli, ['hadoop', 'format', '--conf', conf], input='n\n')

    assert result.exit_code == 1
    assert calls == []

    result = CliRunner().invoke(cli, ['hadoop', 'format', '--yes', '--conf', conf])
    assert result.exit_code == 0
    assert calls == ['format']


def test_command_error_exit_code(conf, monkeypatch):
    """Test a failing command's exit code becomes the CLI exit code"""
    def fake_run_install(config, force=False, skip_format=False, module=None):
        raise CommandError('start-dfs.sh', 3)

    monkeypatch.setattr(install_command, 'run_install', fake_run_install)

    result = CliRunner().invoke(cli, ['install', '--conf', conf])

    assert result.exit_code == 3


def test_install_options(conf, monkeypatch):
    received = {}

    def fake_run_install(config, force=False, skip_format=False, module=None):
        received.update(force=force, skip_format=skip_format, module=module)

    monkeypatch.setattr(install_command, 'run_install', fake_run_install)

    result = CliRunner().invoke(cli, ['install', '--force', '--module', 'jdk', '--conf', conf])

    assert result.exit_code == 0
    assert received == {'force': True, 'skip_format': False, 'module': 'jdk'}


def test_prepare_passes_overrides(conf, monkeypatch):
    received = {}

    def fake_prepare_node(config, role, **kwargs):
        received.update(kwargs, role=role)

    monkeypatch.setattr(prepare_command, 'prepare_node', fake_prepare_node)

    result = CliRunner().invoke(cli, [
        'prepare', 'worker1', '--ip', '10.0.0.21', '--dns', '1.1.1.1,8.8.8.8', '--conf', conf,
    ])

    assert result.exit_code == 0
    assert received['role'] == 'worker1'
    assert received['ip'] == '10.0.0.21'
    assert received['dns'] == '1.1.1.1,8.8.8.8'
    assert received['cidr'] is None


def test_spark_env_prints_refresh_command(conf):
    result = CliRunner().invoke(cli, ['spark', 'env', '--conf', conf])

    assert result.exit_code == 0
    assert 'source /etc/profile.d/java.sh && source /etc/profile.d/hadoop.sh' in result.output


def test_unknown_action_rejected(conf):
    result = CliRunner().invoke(cli, ['spark', 'bogus', '--conf', conf])

    assert result.exit_code == 2
