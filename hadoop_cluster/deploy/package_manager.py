"""
Artifact download and versioned installation
"""
import os
import shutil
import tarfile
import tempfile
import urllib.error
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

from tqdm import tqdm

from hadoop_cluster.errors import DownloadError, InstallError
from hadoop_cluster.utils.logger import get_logger

logger = get_logger(__name__)

JAVA_MARKER = 'bin/java'
HADOOP_MARKER = 'bin/hdfs'
SPARK_MARKER = 'bin/spark-submit'


@dataclass(frozen=True)
class InstalledArtifact:
    """A versioned install directory and the stable symlink pointing at it"""

    version_dir: Path
    symlink: Path
    freshly_installed: bool


def artifact_filename(url):
    """Cache file name for a download URL (its last path segment)"""
    name = os.path.basename(urlparse(url).path)
    if not name:
        raise DownloadError(f"Cannot derive a file name from URL: {url}")
    return name


def download_artifact(url, cache_dir):
    """
    Download an artifact into cache_dir unless it is already there

    Args:
        url: Download URL
        cache_dir: Cache directory

    Returns:
        Path to the cached file
    """
    cache_path = Path(cache_dir)
    cache_path.mkdir(parents=True, exist_ok=True)
    local_file = cache_path / artifact_filename(url)

    if local_file.exists():
        logger.info(f"Found cached package: {local_file}")
        return local_file

    logger.info(f"Downloading from: {url}")
    partial = local_file.with_name(local_file.name + '.part')

    with tqdm(unit='B', unit_scale=True, unit_divisor=1024, desc=local_file.name,
              miniters=1) as bar:
        def download_progress(block_num, block_size, total_size):
            if total_size > 0:
                bar.total = total_size
            bar.update(block_num * block_size - bar.n)

        try:
            urllib.request.urlretrieve(url, str(partial), reporthook=download_progress)
        except (urllib.error.URLError, OSError, ValueError) as e:
            partial.unlink(missing_ok=True)
            raise DownloadError(f"Download failed: {url}: {e}")

    partial.rename(local_file)
    logger.info(f"✓ Downloaded: {local_file}")
    return local_file


def verify_archive(archive):
    """
    Check that archive is a readable compressed tar; remove it if not

    Returns:
        Member names
    """
    archive = Path(archive)
    try:
        with tarfile.open(archive, 'r:*') as tar:
            names = tar.getnames()
    except (tarfile.TarError, OSError, EOFError) as e:
        logger.warning(f"Archive is corrupted, removing: {archive}")
        archive.unlink(missing_ok=True)
        raise InstallError(f"Corrupt archive {archive}: {e}")
    if not names:
        archive.unlink(missing_ok=True)
        raise InstallError(f"Empty archive: {archive}")
    return names


def top_level_dir(names):
    """
    The single top-level directory of an archive's member list

    Raises:
        InstallError: If there is not exactly one
    """
    tops = set()
    for name in names:
        parts = [part for part in name.split('/') if part not in ('', '.')]
        if parts:
            tops.add(parts[0])
    if len(tops) != 1:
        raise InstallError(
            f"package structure anomaly: expected one top-level directory, found {sorted(tops)}"
        )
    return tops.pop()


def version_suffix(top_name, install_base_name):
    """
    Version part of an archive's top-level directory name

    `hadoop-3.3.6` with base `/opt/hadoop` gives `3.3.6`;
    `jdk1.8.0_202` with base `/opt/jdk` gives `1.8.0_202`.
    """
    prefix = Path(install_base_name).name
    if prefix and top_name.startswith(prefix):
        suffix = top_name[len(prefix):].lstrip('-_')
        if suffix:
            return suffix
    return top_name


def point_symlink(symlink, target):
    """
    Make symlink point at target; no change if it already does

    Returns:
        True if the link was (re)created
    """
    symlink = Path(symlink)
    target = Path(target)
    if symlink.is_symlink():
        if Path(os.readlink(symlink)) == target:
            return False
        symlink.unlink()
    elif symlink.exists():
        raise InstallError(f"{symlink} exists and is not a symlink; move it away or remove it")
    symlink.parent.mkdir(parents=True, exist_ok=True)
    symlink.symlink_to(target)
    logger.info(f"Symlink {symlink} -> {target}")
    return True


def _extract(archive, top, target):
    scratch = Path(tempfile.mkdtemp(prefix=f".tmp_{target.name}_", dir=target.parent))
    try:
        with tarfile.open(archive, 'r:*') as tar:
            tar.extractall(scratch, filter='tar')
        if target.is_symlink():
            target.unlink()
        elif target.exists():
            shutil.rmtree(target)
        shutil.move(str(scratch / top), str(target))
    except (tarfile.TarError, OSError) as e:
        raise InstallError(f"Extracting {archive} into {target} failed: {e}")
    finally:
        shutil.rmtree(scratch, ignore_errors=True)


def ensure_installed(download_url, cache_dir, install_base_name, symlink_path, force=False,
                     marker=None):
    """
    Download, verify and install an artifact under a versioned directory

    Args:
        download_url: Archive URL
        cache_dir: Download cache directory
        install_base_name: Base path; the install goes to <base>-<version>
        symlink_path: Stable symlink repointed at the install
        force: Re-extract even if the versioned directory exists
        marker: Path relative to the install that must exist (e.g. bin/hdfs)

    Returns:
        InstalledArtifact
    """
    archive = download_artifact(download_url, cache_dir)
    names = verify_archive(archive)
    top = top_level_dir(names)
    target = Path(f"{install_base_name}-{version_suffix(top, install_base_name)}")

    fresh = False
    if target.exists() and not force:
        logger.info(f"{target.name} already installed: {target}")
    else:
        logger.info(f"Installing {archive.name} to {target}")
        target.parent.mkdir(parents=True, exist_ok=True)
        _extract(archive, top, target)
        fresh = True

    symlink = Path(symlink_path)
    point_symlink(symlink, target)

    if marker and not (symlink / marker).exists():
        raise InstallError(f"Install check failed: {symlink / marker} not found")

    logger.info(f"✓ {symlink} -> {target}")
    return InstalledArtifact(target, symlink, fresh)


def install_jdk(config, force=False):
    return ensure_installed(
        config.get_str('JDK_DOWNLOAD_LINK'),
        Path(config.get_str('INSTALL_BASE')) / 'src',
        config.get_str('JAVA_DIR'),
        config.get_str('JAVA_DIR'),
        force=force,
        marker=JAVA_MARKER,
    )


def install_hadoop(config, force=False):
    return ensure_installed(
        config.get_str('HADOOP_DOWNLOAD_LINK'),
        Path(config.get_str('INSTALL_BASE')) / 'src',
        config.get_str('HADOOP_DIR'),
        config.get_str('HADOOP_SYMLINK'),
        force=force,
        marker=HADOOP_MARKER,
    )


def install_spark(config, force=False):
    return ensure_installed(
        config.get_str('SPARK_DOWNLOAD_LINK'),
        Path(config.get_str('INSTALL_BASE', '/opt')) / 'src',
        config.get_str('SPARK_DIR'),
        config.get_str('SPARK_SYMLINK'),
        force=force,
        marker=SPARK_MARKER,
    )
