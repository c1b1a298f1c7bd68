"""
Hadoop and Spark configuration generation
"""
import os
import shutil
from pathlib import Path

from hadoop_cluster.deploy.config_writer import ConfigWriter, ManagedBlock
from hadoop_cluster.errors import PreconditionError
from hadoop_cluster.utils.logger import get_logger

logger = get_logger(__name__)

PROFILE_DIR = '/etc/profile.d'
SECONDARY_NAMENODE_HTTP_PORT = 9868

WORKERS_TAG = 'HADOOP_CLUSTER_WORKERS'
JAVA_HOME_TAG = 'HADOOP_CLUSTER_JAVA_HOME'
SPARK_ENV_TAG = 'HADOOP_CLUSTER_SPARK_ENV'
PROFILE_TAGS = {
    'java': 'HADOOP_CLUSTER_JAVA_PROFILE',
    'hadoop': 'HADOOP_CLUSTER_HADOOP_PROFILE',
    'spark': 'HADOOP_CLUSTER_SPARK_PROFILE',
}

# Optional tunables: config key -> (file, property)
YARN_MR_TUNABLES = {
    'YARN_NM_MEMORY_MB': ('yarn-site.xml', 'yarn.nodemanager.resource.memory-mb'),
    'YARN_NM_VCORES': ('yarn-site.xml', 'yarn.nodemanager.resource.cpu-vcores'),
    'YARN_MAX_ALLOC_MB': ('yarn-site.xml', 'yarn.scheduler.maximum-allocation-mb'),
    'YARN_MIN_ALLOC_MB': ('yarn-site.xml', 'yarn.scheduler.minimum-allocation-mb'),
    'MR_AM_MB': ('mapred-site.xml', 'yarn.app.mapreduce.am.resource.mb'),
    'MR_MAP_MB': ('mapred-site.xml', 'mapreduce.map.memory.mb'),
    'MR_REDUCE_MB': ('mapred-site.xml', 'mapreduce.reduce.memory.mb'),
}

LOG4J2_PROPERTIES = """\
# Minimal log4j2 config, console on stderr
status = error
name = SparkLog4j2

appender.console.type = Console
appender.console.name = console
appender.console.target = SYSTEM_ERR
appender.console.layout.type = PatternLayout
appender.console.layout.pattern = %d{yy/MM/dd HH:mm:ss} %p %c{1}: %m%n

rootLogger.level = info
rootLogger.appenderRefs = console
rootLogger.appenderRef.console.ref = console
"""


def hadoop_conf_dir(config):
    return Path(config.get_str('HADOOP_SYMLINK')) / 'etc' / 'hadoop'


def spark_conf_dir(config):
    return Path(config.get_str('SPARK_SYMLINK')) / 'conf'


def hadoop_properties(config):
    """
    Properties managed in each Hadoop *-site.xml file

    Args:
        config: ClusterConfig

    Returns:
        Dict of file name -> list of (name, value)
    """
    master = config.master_hostname
    history = config.get_str('JOBHISTORYSERVER_HOSTNAME')

    properties = {
        'core-site.xml': [
            ('fs.defaultFS', f"hdfs://{master}:{config.get_int('FS_DEFAULT_PORT')}"),
            ('hadoop.tmp.dir', f"{config.get_str('HADOOP_DATA_DIR')}/tmp"),
        ],
        'hdfs-site.xml': [
            ('dfs.replication', str(config.get_int('HDFS_REPLICATION'))),
            ('dfs.namenode.name.dir', f"file://{config.get_str('HDFS_NAME_DIR')}"),
            ('dfs.datanode.data.dir', f"file://{config.get_str('HDFS_DATA_DIR')}"),
            ('dfs.permissions.enabled', 'false'),
            ('dfs.namenode.datanode.registration.ip-hostname-check', 'false'),
            ('dfs.namenode.secondary.http-address',
             f"{config.get_str('SECONDARY_NAMENODE_HOSTNAME')}:{SECONDARY_NAMENODE_HTTP_PORT}"),
        ],
        'yarn-site.xml': [
            ('yarn.resourcemanager.hostname', master),
            ('yarn.nodemanager.aux-services', 'mapreduce_shuffle'),
        ],
        'mapred-site.xml': [
            ('mapreduce.framework.name', 'yarn'),
            ('mapreduce.jobhistory.address',
             f"{history}:{config.get_str('MAPREDUCE_JOBHISTORY_ADDRESS_PORT')}"),
            ('mapreduce.jobhistory.webapp.address',
             f"{history}:{config.get_str('MAPREDUCE_JOBHISTORY_WEBAPP_PORT')}"),
        ],
    }

    for key, (file_name, name) in YARN_MR_TUNABLES.items():
        if key in config:
            properties[file_name].append((name, str(config.get_int(key))))

    if 'MR_JAVA_XMX' in config:
        opts = f"-Xmx{config.get_str('MR_JAVA_XMX')}"
        properties['mapred-site.xml'].append(('mapreduce.map.java.opts', opts))
        properties['mapred-site.xml'].append(('mapreduce.reduce.java.opts', opts))
        properties['mapred-site.xml'].append(('yarn.app.mapreduce.am.command-opts', opts))

    return properties


def profile_scripts(config, include_spark=False):
    """
    Login-shell environment blocks for /etc/profile.d

    Returns:
        Dict of script name (java, hadoop, spark) -> block content
    """
    scripts = {
        'java': (
            f'export JAVA_HOME="{config.get_str("JAVA_DIR")}"\n'
            'export PATH="$JAVA_HOME/bin:$PATH"'
        ),
        'hadoop': (
            f'export HADOOP_HOME="{config.get_str("HADOOP_SYMLINK")}"\n'
            'export HADOOP_CONF_DIR="$HADOOP_HOME/etc/hadoop"\n'
            'export PATH="$HADOOP_HOME/bin:$HADOOP_HOME/sbin:$PATH"'
        ),
    }
    if include_spark:
        scripts['spark'] = (
            f'export SPARK_HOME="{config.get_str("SPARK_SYMLINK")}"\n'
            'export PATH="$SPARK_HOME/bin:$SPARK_HOME/sbin:$PATH"'
        )
    return scripts


def write_profile_scripts(config, writer, names, profile_dir=PROFILE_DIR):
    """
    Write /etc/profile.d/<name>.sh marker blocks (mode 644)

    Returns:
        List of written paths
    """
    scripts = profile_scripts(config, include_spark='spark' in names)
    paths = []
    for name in names:
        path = Path(profile_dir) / f"{name}.sh"
        ManagedBlock(path, PROFILE_TAGS[name]).write(scripts[name], writer)
        if path.exists():
            os.chmod(path, 0o644)
        paths.append(path)
        logger.info(f"✓ {path}")
    return paths


def generate_hadoop_configs(config, writer=None, etc_dir=None):
    """
    Apply the cluster's settings to the Hadoop configuration directory

    Only managed properties and marker blocks change; other operator edits
    survive.

    Args:
        config: ClusterConfig
        writer: ConfigWriter shared across the run
        etc_dir: Override for $HADOOP_SYMLINK/etc/hadoop

    Returns:
        ConfigWriter used
    """
    writer = writer or ConfigWriter()
    etc_dir = Path(etc_dir) if etc_dir else hadoop_conf_dir(config)
    if not etc_dir.is_dir():
        raise PreconditionError(f"Hadoop configuration directory not found: {etc_dir}")

    mapred = etc_dir / 'mapred-site.xml'
    template = etc_dir / 'mapred-site.xml.template'
    if not mapred.exists() and template.exists():
        shutil.copy2(template, mapred)
        logger.info(f"Created {mapred.name} from template")

    for file_name, properties in hadoop_properties(config).items():
        writer.upsert_properties(etc_dir / file_name, properties)

    workers = config.worker_hostnames
    ManagedBlock(etc_dir / 'workers', WORKERS_TAG).write('\n'.join(workers), writer)
    ManagedBlock(etc_dir / 'hadoop-env.sh', JAVA_HOME_TAG).write(
        f'export JAVA_HOME="{config.get_str("JAVA_DIR")}"', writer
    )

    logger.info(f"✓ Hadoop configuration updated in {etc_dir}")
    return writer


def spark_env(config):
    return (
        f'export JAVA_HOME="{config.get_str("JAVA_DIR")}"\n'
        f'export HADOOP_CONF_DIR="{config.get_str("HADOOP_SYMLINK")}/etc/hadoop"\n'
        'export YARN_CONF_DIR="${HADOOP_CONF_DIR}"\n'
        f'export SPARK_LOG_DIR="{config.get_str("SPARK_EVENTLOG_DIR_LOCAL")}"'
    )


def spark_defaults(config):
    """spark-defaults.conf entries for Spark on YARN with event logs"""
    user = config.hadoop_user
    eventlog_dir = config.get_str('SPARK_EVENTLOG_DIR_HDFS')
    return [
        ('spark.master', config.get_str('SPARK_MASTER')),
        ('spark.submit.deployMode', config.get_str('SPARK_DEPLOY_MODE_DEFAULT')),
        ('spark.sql.warehouse.dir', config.get_str('SPARK_SQL_WAREHOUSE_DIR')),
        ('spark.eventLog.enabled', str(config.get_bool('ENABLE_SPARK_EVENTLOG')).lower()),
        ('spark.eventLog.dir', eventlog_dir),
        ('spark.history.fs.logDirectory', eventlog_dir),
        ('spark.history.ui.port', str(config.get_int('SPARK_HISTORYSERVER_UI_PORT'))),
        ('spark.yarn.appMasterEnv.HADOOP_USER_NAME', user),
        ('spark.executorEnv.HADOOP_USER_NAME', user),
    ]


def generate_spark_configs(config, writer=None, conf_dir=None):
    """
    Apply the cluster's settings to Spark's conf directory

    Args:
        config: ClusterConfig
        writer: ConfigWriter shared across the run
        conf_dir: Override for $SPARK_SYMLINK/conf

    Returns:
        ConfigWriter used
    """
    writer = writer or ConfigWriter()
    conf_dir = Path(conf_dir) if conf_dir else spark_conf_dir(config)
    if not conf_dir.is_dir():
        raise PreconditionError(f"Spark conf directory not found: {conf_dir}")

    env_file = conf_dir / 'spark-env.sh'
    ManagedBlock(env_file, SPARK_ENV_TAG).write(spark_env(config), writer)
    if env_file.exists():
        os.chmod(env_file, 0o755)

    defaults = conf_dir / 'spark-defaults.conf'
    for key, value in spark_defaults(config):
        writer.upsert_conf_property(defaults, key, value)

    writer.write_if_absent(conf_dir / 'log4j2.properties', LOG4J2_PROPERTIES)

    logger.info(f"✓ Spark configuration updated in {conf_dir}")
    return writer
