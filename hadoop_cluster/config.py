"""
Configuration management
"""
import os
import re
import shlex
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType

from dotenv import dotenv_values

from hadoop_cluster.errors import ConfigError
from hadoop_cluster.utils.logger import get_logger, mask_sensitive_data

logger = get_logger(__name__)

DEFAULT_CONFIG_FILE = 'cluster.conf'

PUSH_MODE_COPY_ID = 'copy-id'
PUSH_MODE_SSHPASS = 'sshpass'
PUSH_MODES = (PUSH_MODE_COPY_ID, PUSH_MODE_SSHPASS)

_WORKER_KEY = re.compile(r'^WORKER(\d+)_HOSTNAME$')
_TRUE = {'true', 'yes', '1', 'on'}
_FALSE = {'false', 'no', '0', 'off', ''}


def parse_value(raw):
    """
    Convert a raw cluster.conf value into a typed value

    `(a b c)` shell arrays become lists; `(a:1 b:2)` arrays whose every item
    holds a colon become lists of pairs. Everything else stays a string.

    Args:
        raw: Value text as read from the file

    Returns:
        str, list of str, or list of (str, str) tuples
    """
    if raw is None:
        return ''
    text = raw.strip()
    if text.startswith('(') and text.endswith(')'):
        items = shlex.split(text[1:-1], comments=True)
        if items and all(':' in item for item in items):
            return [tuple(item.split(':', 1)) for item in items]
        return items
    return text


def default_config_path():
    """Config path from $CLUSTER_CONF, falling back to ./cluster.conf"""
    return os.getenv('CLUSTER_CONF', DEFAULT_CONFIG_FILE)


@dataclass(frozen=True)
class ClusterConfig:
    """Validated, immutable view of cluster.conf"""

    values: MappingProxyType
    source: str = ''

    def __contains__(self, key):
        return key in self.values and self.values[key] not in ('', [])

    def require(self, *keys):
        """
        Ensure every key is present and non-empty

        Raises:
            ConfigError: Listing every missing key
        """
        missing = [key for key in keys if key not in self]
        if missing:
            raise ConfigError(
                f"{self.source or 'cluster.conf'} is missing required keys: {', '.join(missing)}"
            )
        return self

    def get(self, key, default=None):
        return self.values.get(key, default)

    def get_str(self, key, default=None):
        value = self.values.get(key)
        if value is None or value == '':
            if default is None:
                raise ConfigError(f"Missing required key: {key}")
            return default
        if isinstance(value, list):
            raise ConfigError(f"{key} must be a single value, got an array")
        return value

    def get_bool(self, key, default=False):
        value = self.values.get(key)
        if value is None:
            return default
        if isinstance(value, list):
            raise ConfigError(f"{key} must be true/false, got an array")
        lowered = value.lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        raise ConfigError(f"{key} must be true/false, got: {value}")

    def get_int(self, key, default=None):
        value = self.get_str(key, None if default is None else str(default))
        try:
            return int(value)
        except ValueError:
            raise ConfigError(f"{key} must be an integer, got: {value}")

    def get_list(self, key, default=None):
        value = self.values.get(key)
        if value is None or value == '':
            if default is None:
                raise ConfigError(f"Missing required key: {key}")
            return list(default)
        if isinstance(value, list):
            return list(value)
        # Allow comma or whitespace separated scalars
        return [item for item in re.split(r'[,\s]+', value) if item]

    # Common keys

    @property
    def hadoop_user(self):
        return self.get_str('HADOOP_USER')

    @property
    def master_hostname(self):
        return self.get_str('MASTER_HOSTNAME')

    @property
    def worker_hostnames(self):
        """Worker hostnames ordered by their WORKER<n> index"""
        indexed = []
        for key in self.values:
            match = _WORKER_KEY.match(key)
            if match and self.values[key]:
                indexed.append((int(match.group(1)), self.values[key]))
        return [hostname for _, hostname in sorted(indexed)]

    @property
    def cluster_hostnames(self):
        if 'CLUSTER_HOSTNAMES' in self:
            return self.get_list('CLUSTER_HOSTNAMES')
        return [self.master_hostname] + self.worker_hostnames

    @property
    def push_mode(self):
        mode = self.get_str('SSH_PUSH_MODE', PUSH_MODE_COPY_ID)
        if mode not in PUSH_MODES:
            raise ConfigError(f"Unknown SSH_PUSH_MODE={mode} (supported: {'/'.join(PUSH_MODES)})")
        return mode

    @property
    def sudo_password(self):
        if self.push_mode != PUSH_MODE_SSHPASS:
            return None
        return self.get_str('SSH_DEFAULT_PASSWORD')

    def as_dict(self):
        return dict(self.values)

    def masked(self):
        return mask_sensitive_data(self.as_dict())


def load_config(config_file):
    """
    Load configuration from a cluster.conf file

    Args:
        config_file: Path to config file

    Returns:
        ClusterConfig
    """
    config_path = Path(config_file)

    if not config_path.exists():
        raise ConfigError(f"Configuration file not found: {config_file}")

    try:
        raw = dotenv_values(config_path, interpolate=True)
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"Cannot read configuration file {config_file}: {e}")

    values = {key: parse_value(value) for key, value in raw.items()}
    config = ClusterConfig(MappingProxyType(values), source=str(config_path))

    logger.info(f"Configuration loaded from: {config_file}")
    if values.get('SSH_PUSH_MODE') == PUSH_MODE_SSHPASS:
        logger.warning(
            "SSH_PUSH_MODE=sshpass: SSH_DEFAULT_PASSWORD is stored in plaintext in "
            f"{config_file}; restrict its permissions and prefer copy-id for supervised runs"
        )
    return config
