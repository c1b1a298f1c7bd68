#!/usr/bin/env python3
"""
Hadoop/Spark Cluster Bootstrap CLI
"""
import json
import logging
import sys

import click
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from hadoop_cluster import __version__
from hadoop_cluster.config import default_config_path, load_config
from hadoop_cluster.utils.logger import PACKAGE_LOGGER, setup_logger, tool_log_file

conf_option = click.option(
    '--conf', 'conf',
    default=default_config_path,
    show_default='$CLUSTER_CONF or ./cluster.conf',
    help='Configuration file path',
)
verbose_option = click.option('--verbose', is_flag=True, help='Verbose output')


def start_logging(tool, verbose=False):
    return setup_logger(
        PACKAGE_LOGGER,
        tool_log_file(tool),
        level=logging.DEBUG if verbose else logging.INFO,
    )


def fail(logger, operation, error):
    logger.error(f"{operation} failed: {error}")
    sys.exit(getattr(error, 'exit_code', 1))


def choose_action(title, actions):
    """Numbered menu; returns the chosen action"""
    click.echo(title)
    for number, action in enumerate(actions, 1):
        click.echo(f"  {number}) {action}")
    choice = click.prompt('Select', type=click.IntRange(1, len(actions)))
    return actions[choice - 1]


@click.group()
@click.version_option(version=__version__)
def cli():
    """
    Hadoop/Spark Cluster Bootstrap Tool

    Prepare Ubuntu nodes, install and distribute JDK/Hadoop/Spark from the
    master, and run the cluster lifecycle.
    """
    pass


@cli.command()
@click.argument('role')
@click.option('--ip', help='Static IPv4 of this node (default DEFAULT_IP_<ROLE>)')
@click.option('--hostname', help='Override the hostname from the configuration')
@click.option('--cidr', help='Override NET_CIDR')
@click.option('--gateway', help='Override GATEWAY')
@click.option('--dns', help='Override DNS_SERVERS (comma separated)')
@conf_option
@verbose_option
def prepare(role, ip, hostname, cidr, gateway, dns, conf, verbose):
    """
    Prepare this node as ROLE (master, worker1, worker2, ...)

    Sets hostname, static IP, /etc/hosts and the service account SSH keys.
    Run on every node before `install`.
    """
    logger = start_logging('prepare', verbose)
    try:
        cfg = load_config(conf)

        from hadoop_cluster.commands.prepare import prepare_node

        prepare_node(cfg, role, ip=ip, hostname=hostname, cidr=cidr, gateway=gateway, dns=dns)
        click.echo(f"\n✓ Node prepared as {role}")

    except Exception as e:
        fail(logger, 'prepare', e)


@cli.command()
@click.option('--force', is_flag=True, help='Reinstall over existing install directories')
@click.option('--skip-format', is_flag=True, help='Do not format the NameNode')
@click.option('--module', type=click.Choice(['ssh', 'jdk', 'hadoop', 'configs', 'distribute']),
              help='Run a single step of the install flow')
@conf_option
@verbose_option
def install(force, skip_format, module, conf, verbose):
    """
    Install JDK + Hadoop on the master and distribute them to workers

    This command will:
    1. Establish SSH trust to the workers
    2. Download and install JDK and Hadoop
    3. Update the Hadoop configuration
    4. Distribute to every worker
    5. Format the NameNode if it was never formatted
    """
    logger = start_logging('install', verbose)
    try:
        cfg = load_config(conf)

        from hadoop_cluster.commands.install import run_install

        run_install(cfg, force=force, skip_format=skip_format, module=module)
        click.echo("\n✓ Install completed")

    except Exception as e:
        fail(logger, 'install', e)


@cli.command()
@click.argument('action', required=False,
                type=click.Choice(['start', 'stop', 'restart', 'status', 'format', 'health']))
@click.option('--yes', is_flag=True, help='Do not ask before formatting')
@conf_option
@verbose_option
def hadoop(action, yes, conf, verbose):
    """
    Hadoop lifecycle on the master

    start formats the NameNode on first use; format always wipes HDFS
    metadata.
    """
    from hadoop_cluster.commands.hadoop import ACTIONS, run_hadoop

    if action is None:
        action = choose_action('Hadoop actions:', ACTIONS)

    if action == 'format' and not yes:
        click.confirm('⚠️  This wipes all HDFS metadata. Format the NameNode?', abort=True)

    logger = start_logging('hadoop', verbose)
    try:
        cfg = load_config(conf)
        logger.info(f"action: {action}, conf: {conf}")
        run_hadoop(cfg, action)

    except Exception as e:
        fail(logger, f"hadoop {action}", e)


@cli.command()
@click.argument('action', required=False,
                type=click.Choice(['install', 'start', 'stop', 'restart', 'status', 'health',
                                   'env', 'shell', 'sparksql', 'pyspark']))
@click.option('--force', is_flag=True, help='Reinstall over an existing Spark')
@conf_option
@verbose_option
def spark(action, force, conf, verbose):
    """
    Spark install, History Server lifecycle and launchers
    """
    from hadoop_cluster.commands.spark import ACTIONS, run_spark

    if action is None:
        action = choose_action('Spark actions:', ACTIONS)

    logger = start_logging('spark', verbose)
    try:
        cfg = load_config(conf)
        logger.info(f"action: {action}, conf: {conf}")
        result = run_spark(cfg, action, force=force)
        if action == 'env':
            click.echo("Run this in your shell to load the environment:")
            click.echo(result)

    except Exception as e:
        fail(logger, f"spark {action}", e)


@cli.command('show-config')
@conf_option
def show_config(conf):
    """
    Show the loaded configuration with secrets masked
    """
    logger = setup_logger(PACKAGE_LOGGER)
    try:
        cfg = load_config(conf)
        click.echo(json.dumps(cfg.masked(), indent=2))

    except Exception as e:
        fail(logger, 'show-config', e)


if __name__ == '__main__':
    cli()
