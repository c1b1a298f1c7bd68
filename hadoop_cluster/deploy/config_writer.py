"""
Idempotent patching of managed configuration files

Generated settings are written as targeted upserts: single XML properties,
`key value` lines, or marker-delimited blocks. Everything else in the file
is left byte-for-byte as the operator wrote it.
"""
import re
import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from xml.sax.saxutils import escape

from hadoop_cluster.errors import ConfigWriteError
from hadoop_cluster.utils.logger import get_logger

logger = get_logger(__name__)

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'
XML_SKELETON = f"{XML_DECLARATION}\n<configuration>\n</configuration>\n"

_OPEN_ROOT = re.compile(r'<configuration(\s[^>]*)?>')
_CLOSE_ROOT = re.compile(r'</configuration\s*>')
_DECLARATION = re.compile(r'\A\s*<\?xml[^>]*\?>[ \t]*\n?')
_COMMENT = re.compile(r'<!--.*?-->', re.DOTALL)


def backup_path(path, now=None):
    """
    Name for a timestamped backup that does not clobber an earlier one

    Args:
        path: File being backed up
        now: Timestamp override

    Returns:
        Path of the form <file>.bak.<YYYYmmddHHMMSS>[.<n>]
    """
    path = Path(path)
    stamp = (now or datetime.now()).strftime('%Y%m%d%H%M%S')
    candidate = path.with_name(f"{path.name}.bak.{stamp}")
    counter = 1
    while candidate.exists():
        candidate = path.with_name(f"{path.name}.bak.{stamp}.{counter}")
        counter += 1
    return candidate


def _property_pattern(name):
    return re.compile(
        r'<property>\s*<name>\s*' + re.escape(name) + r'\s*</name>.*?</property>',
        re.DOTALL,
    )


def _property_block(name, value):
    return (
        "<property>\n"
        f"    <name>{name}</name>\n"
        f"    <value>{value}</value>\n"
        "  </property>"
    )


def ensure_configuration_root(text):
    """
    Make sure text has exactly one <configuration> root element

    Content without the root is wrapped (an XML declaration stays on top);
    a missing closing tag is appended.

    Args:
        text: Current file content

    Returns:
        Content with a usable root

    Raises:
        ConfigWriteError: If the root cannot be established by wrapping
    """
    if not text.strip():
        return XML_SKELETON

    opens = _OPEN_ROOT.findall(text)
    closes = _CLOSE_ROOT.findall(text)

    if not opens:
        if closes:
            raise ConfigWriteError("found </configuration> without an opening <configuration> tag")
        declaration = _DECLARATION.match(text)
        head = XML_DECLARATION
        body = text
        if declaration:
            head = declaration.group(0).rstrip()
            body = text[declaration.end():]
        body = body.strip('\n')
        inner = f"{body}\n" if body else ''
        return f"{head}\n<configuration>\n{inner}</configuration>\n"

    if len(opens) > 1 or len(closes) > 1:
        raise ConfigWriteError("found more than one <configuration> root element")

    if not closes:
        if not text.endswith('\n'):
            text += '\n'
        return text + '</configuration>\n'

    if _CLOSE_ROOT.search(text).start() < _OPEN_ROOT.search(text).start():
        raise ConfigWriteError("</configuration> appears before <configuration>")

    return text


def apply_property(text, name, value):
    """
    Upsert one property into XML configuration text

    Args:
        text: File content with a valid root
        name: Property name (taken literally)
        value: Property value (XML-escaped on write)

    Returns:
        New content
    """
    name = escape(name)
    value = escape(str(value))
    block = _property_block(name, value)
    pattern = _property_pattern(name)

    # Commented-out properties belong to the operator
    comments = [match.span() for match in _COMMENT.finditer(text)]
    matches = [
        match for match in pattern.finditer(text)
        if not any(start <= match.start() < end for start, end in comments)
    ]
    if matches:
        first = matches[0]
        # Drop duplicates back to front so earlier offsets stay valid
        for match in reversed(matches[1:]):
            start = match.start()
            end = match.end()
            line_start = text.rfind('\n', 0, start) + 1
            if not text[line_start:start].strip():
                start = line_start
            if text[end:end + 1] == '\n':
                end += 1
            text = text[:start] + text[end:]
        return text[:first.start()] + block + text[first.end():]

    close = _CLOSE_ROOT.search(text)
    before = text[:close.start()]
    line_start = before.rfind('\n') + 1
    if before[line_start:].strip():
        # Closing tag shares a line with other content
        insert = f"\n  {block}\n"
        return before + insert + text[close.start():]
    # Insert above the closing tag's line, keep its indentation
    return before[:line_start] + f"  {block}\n" + text[line_start:]


def apply_marker_block(text, begin, end, content):
    """
    Replace or append a marker-delimited block

    An existing block is replaced where it stands; further copies are removed.
    Without one, the block is appended at end of file.

    Args:
        text: Current file content
        begin: Begin marker line
        end: End marker line
        content: Block body (without markers)

    Returns:
        New content

    Raises:
        ConfigWriteError: If a begin marker has no matching end marker
    """
    body = content.strip('\n')
    block_lines = [begin] + ([body] if body else []) + [end]
    block = '\n'.join(block_lines) + '\n'

    lines = text.splitlines(keepends=True)
    regions = []
    index = 0
    while index < len(lines):
        if lines[index].strip() == begin.strip():
            stop = index + 1
            while stop < len(lines) and lines[stop].strip() != end.strip():
                stop += 1
            if stop == len(lines):
                raise ConfigWriteError(f"marker '{begin}' has no matching '{end}'")
            regions.append((index, stop))
            index = stop + 1
        else:
            index += 1

    if not regions:
        prefix = text
        if prefix and not prefix.endswith('\n'):
            prefix += '\n'
        if prefix:
            prefix += '\n'
        return prefix + block

    out = []
    cursor = 0
    for number, (start, stop) in enumerate(regions):
        out.extend(lines[cursor:start])
        if number == 0:
            last = lines[stop]
            # Keep the original file's final-newline state for the end marker
            out.append(block if last.endswith('\n') else block.rstrip('\n'))
        cursor = stop + 1
    out.extend(lines[cursor:])
    return ''.join(out)


def apply_conf_property(text, key, value):
    """
    Upsert a whitespace-separated `key value` line (spark-defaults.conf style)

    Args:
        text: Current content
        key: Property key
        value: Property value

    Returns:
        New content
    """
    new_line = f"{key} {value}"
    lines = text.splitlines(keepends=True)
    found = False
    out = []
    for line in lines:
        stripped = line.strip()
        if stripped and not stripped.startswith('#'):
            parts = stripped.split(None, 1)
            if parts[0] == key:
                if found:
                    continue
                found = True
                current = parts[1].strip() if len(parts) > 1 else ''
                if current == str(value):
                    out.append(line)
                else:
                    ending = '\n' if line.endswith('\n') else ''
                    out.append(new_line + ending)
                continue
        out.append(line)

    result = ''.join(out)
    if not found:
        if result and not result.endswith('\n'):
            result += '\n'
        result += new_line + '\n'
    return result


class ConfigWriter:
    """Applies upserts to managed files, backing each file up once per run"""

    def __init__(self):
        self.backups = {}
        self.changed = set()

    def _read(self, path):
        path = Path(path)
        if not path.exists():
            return None
        try:
            return path.read_text()
        except OSError as e:
            raise ConfigWriteError(f"Cannot read {path}: {e}")

    def _commit(self, path, original, updated):
        path = Path(path)
        if original == updated:
            logger.debug(f"{path} already up to date")
            return False
        try:
            if original is not None and path not in self.backups:
                target = backup_path(path)
                shutil.copy2(path, target)
                self.backups[path] = target
                logger.info(f"Backed up {path} -> {target}")
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_name(f".{path.name}.tmp")
            tmp.write_text(updated)
            if original is not None:
                shutil.copymode(path, tmp)
            tmp.replace(path)
        except OSError as e:
            raise ConfigWriteError(f"Cannot write {path}: {e}")
        self.changed.add(path)
        return True

    def update(self, path, transform):
        """
        Rewrite a file through transform(text) -> text

        Returns:
            True if the file changed
        """
        original = self._read(path)
        return self._commit(path, original, transform(original or ''))

    def upsert_property(self, path, name, value):
        """
        Ensure an XML configuration file holds name=value

        Args:
            path: *-site.xml path (created if missing)
            name: Property name
            value: Property value

        Returns:
            True if the file changed
        """
        original = self._read(path)
        try:
            text = ensure_configuration_root(original or '')
        except ConfigWriteError as e:
            raise ConfigWriteError(f"{path}: {e}")
        updated = apply_property(text, name, value)
        changed = self._commit(path, original, updated)
        if changed:
            logger.info(f"Set {name}={value} in {Path(path).name}")
        return changed

    def upsert_properties(self, path, properties):
        """Upsert several (name, value) pairs in order"""
        changed = False
        for name, value in properties:
            changed = self.upsert_property(path, name, value) or changed
        return changed

    def upsert_marker_block(self, path, begin, end, content):
        """
        Rewrite the block between two marker lines

        Args:
            path: File path (created if missing)
            begin: Begin marker line
            end: End marker line
            content: Block body

        Returns:
            True if the file changed
        """
        original = self._read(path)
        try:
            updated = apply_marker_block(original or '', begin, end, content)
        except ConfigWriteError as e:
            raise ConfigWriteError(f"{path}: {e}")
        return self._commit(path, original, updated)

    def upsert_conf_property(self, path, key, value):
        original = self._read(path)
        updated = apply_conf_property(original or '', key, value)
        return self._commit(path, original, updated)

    def write_if_absent(self, path, content):
        """Create a file the operator may later customise; never overwrite it"""
        if Path(path).exists():
            logger.debug(f"{path} exists, leaving it untouched")
            return False
        return self._commit(path, None, content)


@dataclass(frozen=True)
class ManagedBlock:
    """A file region owned by this tool, bounded by BEGIN/END marker lines"""

    path: Path
    tag: str

    @property
    def begin(self):
        return f"# BEGIN {self.tag}"

    @property
    def end(self):
        return f"# END {self.tag}"

    def write(self, content, writer=None):
        writer = writer or ConfigWriter()
        return writer.upsert_marker_block(self.path, self.begin, self.end, content)


def upsert_property(path, name, value):
    """Module-level shortcut for a one-off property upsert"""
    return ConfigWriter().upsert_property(path, name, value)


def upsert_marker_block(path, begin, end, content):
    """Module-level shortcut for a one-off marker block upsert"""
    return ConfigWriter().upsert_marker_block(path, begin, end, content)
