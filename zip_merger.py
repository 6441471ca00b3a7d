#!/usr/bin/env python3
"""
Zip Merger - crash-safe merging of new files into an existing zip archive

Features:
- Collision detection against the entries already in the destination
- Deterministic renaming (name(1).ext, name(2).ext, ...) or skipping
- Duplicate detection by modification time at one-second granularity
- Atomic update through <archive>.tmp and <archive>.bak sibling files
"""

import argparse
import contextlib
import difflib
import enum
import itertools
import logging
import os
import re
import shutil
import stat
import struct
import sys
import time
import traceback
import zipfile
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

try:
    from rich.console import Console
    from rich.progress import (
        Progress,
        SpinnerColumn,
        TextColumn,
        BarColumn,
        TimeElapsedColumn,
        MofNCompleteColumn,
    )
    from rich.table import Table

    HAS_RICH = True
except ImportError:
    HAS_RICH = False
    Console = None
    Progress = None
    Table = None

try:
    from tqdm import tqdm

    HAS_TQDM = True
except ImportError:
    HAS_TQDM = False
    tqdm = None


__version__ = "1.0.0"
__author__ = "Zip Merger Project"
__license__ = "MIT"

TMP_SUFFIX = ".tmp"
BAK_SUFFIX = ".bak"

# Info-ZIP extended timestamp extra field
EXTENDED_TIMESTAMP_ID = 0x5455
ZIP64_EXTRA_ID = 0x0001

COMPRESSION_METHODS = {
    "stored": zipfile.ZIP_STORED,
    "deflated": zipfile.ZIP_DEFLATED,
    "bzip2": zipfile.ZIP_BZIP2,
    "lzma": zipfile.ZIP_LZMA,
}

DEFAULT_CONFIG = {
    "delete_backup_when_finished": True,
    "rename_on_collision": True,
    "compression": "deflated",
    "buffer_size": "64K",
    "verbose": False,
}

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "zip-merger" / "config"


class ZipMergerError(Exception):
    """Base exception for zip merger errors"""

    pass


class ConfigError(ZipMergerError):
    """Invalid configuration values"""

    pass


class ArchiveMergeError(ZipMergerError):
    """A merge run failed; the destination is either untouched or fully replaced"""

    def __init__(self, step: int, context: str):
        super().__init__(f"failed in {context}")
        self.step = step
        self.context = context


class RunStatus(enum.Enum):
    NO_CHANGE = "no-change"


# Returned by ArchiveMergeJob.run() when nothing had to be written
NO_CHANGE = RunStatus.NO_CHANGE


class MergeStage(enum.IntEnum):
    """Progress of the rewrite protocol, in order"""

    PENDING = 0
    CREATED = 1
    OLD_COPIED = 2
    NEW_APPENDED = 3
    FINALIZED = 4
    SWAPPED = 5
    BACKUP_CLEANED = 6


@dataclass(frozen=True)
class ArchiveItem:
    """A file waiting to be added to the archive"""

    source_path: Path
    entry_name: str


@dataclass(frozen=True)
class ArchiveEntry:
    """Read-only view of an entry already present in an archive"""

    name: str
    modified_time: float

    @classmethod
    def from_zipinfo(cls, info: zipfile.ZipInfo) -> "ArchiveEntry":
        return cls(info.filename, entry_timestamp(info))


@dataclass(frozen=True)
class Keep:
    name: str


@dataclass(frozen=True)
class Rename:
    name: str
    original: str


@dataclass(frozen=True)
class Drop:
    reason: str


Resolution = Union[Keep, Rename, Drop]


def _iter_extra_fields(extra: bytes) -> Iterator[Tuple[int, bytes]]:
    """Yield (header id, payload) pairs of a zip extra block"""
    pos = 0
    while pos + 4 <= len(extra):
        header_id, size = struct.unpack("<HH", extra[pos : pos + 4])
        yield header_id, extra[pos + 4 : pos + 4 + size]
        pos += 4 + size


def _strip_extra_field(extra: bytes, header_id: int) -> bytes:
    return b"".join(
        struct.pack("<HH", hid, len(data)) + data
        for hid, data in _iter_extra_fields(extra)
        if hid != header_id
    )


def _extended_timestamp_extra(mtime: float) -> bytes:
    """Build a UT extra field carrying the modification time"""
    seconds = max(-(2**31), min(int(mtime), 2**31 - 1))
    return struct.pack("<HHBl", EXTENDED_TIMESTAMP_ID, 5, 1, seconds)


def _dos_date_time(mtime: float) -> Tuple[int, int, int, int, int, int]:
    """Local date/time tuple clamped to the range the DOS format can hold"""
    date_time = time.localtime(mtime)[:6]
    if date_time[0] < 1980:
        return (1980, 1, 1, 0, 0, 0)
    if date_time[0] > 2107:
        return (2107, 12, 31, 23, 59, 58)
    return date_time


def entry_timestamp(info: zipfile.ZipInfo) -> float:
    """Modification time of a zip entry as POSIX seconds.

    Prefers the extended timestamp extra field, which has one-second
    resolution. Falls back to the DOS date/time (local time, two-second
    resolution).
    """
    for header_id, data in _iter_extra_fields(info.extra):
        if header_id == EXTENDED_TIMESTAMP_ID and len(data) >= 5 and data[0] & 1:
            return float(struct.unpack("<l", data[1:5])[0])
    return time.mktime(info.date_time + (0, 0, -1))


def same_second(first: float, second: float) -> bool:
    """Timestamps equal once truncated to whole seconds.

    Kept at one-second granularity for compatibility with archives written by
    earlier versions: files whose mtimes differ only below a second count as
    duplicates.
    """
    return int(first) == int(second)


def numbered_names(entry_name: str) -> Iterator[str]:
    """Yield base(1).ext, base(2).ext, ... for an entry name"""
    dot = entry_name.rfind(".")
    if dot >= 0:
        base, extension = entry_name[:dot], entry_name[dot:]
    else:
        base, extension = entry_name, ""
    for number in itertools.count(1):
        yield f"{base}({number}){extension}"


def resolve_item(
    existing: Mapping[str, ArchiveEntry],
    item: ArchiveItem,
    rename_on_collision: bool = True,
    source_mtime: Optional[float] = None,
) -> Resolution:
    """Decide whether an item is kept, renamed or dropped.

    ``source_mtime`` is read from the source file when not given, and only
    when the item actually collides.
    """
    entry = existing.get(item.entry_name)
    if entry is None:
        return Keep(item.entry_name)

    if not rename_on_collision:
        return Drop(f"renaming disabled and '{entry.name}' already exists")

    if source_mtime is None:
        try:
            source_mtime = item.source_path.stat().st_mtime
        except OSError as e:
            return Drop(f"cannot read modification time of {item.source_path}: {e}")

    if same_second(entry.modified_time, source_mtime):
        return Drop(f"duplicate with same datetime found '{entry.name}'")

    for candidate in numbered_names(item.entry_name):
        other = existing.get(candidate)
        if other is None:
            return Rename(candidate, item.entry_name)
        if same_second(other.modified_time, source_mtime):
            return Drop(
                f"duplicate with same datetime found '{candidate}' for '{item.entry_name}'"
            )


def resolve_collisions(
    existing: Mapping[str, ArchiveEntry],
    items: List[ArchiveItem],
    rename_on_collision: bool = True,
) -> List[Tuple[ArchiveItem, Resolution]]:
    """Resolve every item in submission order.

    Names taken by earlier items of the batch are treated as occupied for the
    later ones.
    """
    occupied = dict(existing)
    results = []
    for item in items:
        try:
            mtime = item.source_path.stat().st_mtime
        except OSError:
            mtime = None
        outcome = resolve_item(occupied, item, rename_on_collision, mtime)
        if not isinstance(outcome, Drop) and mtime is not None:
            occupied[outcome.name] = ArchiveEntry(outcome.name, mtime)
        results.append((item, outcome))
    return results


def read_entry_index(archive_path: Path) -> Dict[str, ArchiveEntry]:
    """Map entry names of an archive to their entries; empty if it doesn't exist"""
    if not archive_path.exists():
        return {}
    with zipfile.ZipFile(archive_path, "r") as reader:
        return {
            info.filename: ArchiveEntry.from_zipinfo(info) for info in reader.infolist()
        }


def parse_size(size: Union[str, int]) -> int:
    """Parse human-readable size to bytes with validation"""
    if isinstance(size, int) and not isinstance(size, bool):
        if size <= 0:
            raise ValueError(f"Size must be positive: {size}")
        return size
    if not isinstance(size, str):
        raise ValueError(f"Size must be a string, got {type(size)}")

    size_str = size.upper().strip()
    if size_str.endswith("B"):
        size_str = size_str[:-1]

    match = re.match(r"^(\d*\.?\d+)([KMG]?)$", size_str)
    if not match:
        raise ValueError(f"Invalid size format: {size}")

    number, unit = match.groups()
    multipliers = {"": 1, "K": 1024, "M": 1024**2, "G": 1024**3}
    result = int(float(number) * multipliers[unit])
    if result <= 0:
        raise ValueError(f"Size must be positive: {size}")
    return result


def format_size(size: float) -> str:
    """Format size in human-readable format"""
    if size < 0:
        return "0B"

    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if size < 1024.0:
            return f"{size:.1f}{unit}"
        size /= 1024.0
    return f"{size:.1f}PB"


class ArchiveMergeJob:
    """Adds files to a zip archive without ever leaving it half-written.

    Workflow, for ``somefile.zip``:

    1. resolve name collisions against the current entries
    2. create ``somefile.zip.tmp``
    3. copy the existing entries into it
    4. append the new files
    5. finalize the temporary archive
    6. rename ``somefile.zip`` to ``somefile.zip.bak``
    7. rename ``somefile.zip.tmp`` to ``somefile.zip``
    8. delete ``somefile.zip.bak``

    Only steps 6 and 7 touch the destination path.
    """

    def __init__(self, destination: Union[str, Path], config: Optional[Dict] = None):
        self.config = dict(DEFAULT_CONFIG)
        self.config.update(config or {})

        self.logger = self._setup_logging()

        self.destination = Path(destination).absolute()
        self.temp_path = Path(str(self.destination) + TMP_SUFFIX)
        self.backup_path = Path(str(self.destination) + BAK_SUFFIX)

        self.delete_backup_when_finished = bool(
            self.config["delete_backup_when_finished"]
        )
        self.rename_on_collision = bool(self.config["rename_on_collision"])

        compression = str(self.config["compression"]).lower()
        if compression not in COMPRESSION_METHODS:
            raise ConfigError(
                f"Unknown compression '{compression}', "
                f"expected one of: {', '.join(COMPRESSION_METHODS)}"
            )
        self.compression = COMPRESSION_METHODS[compression]

        try:
            self.buffer_size = parse_size(self.config["buffer_size"])
        except ValueError as e:
            raise ConfigError(str(e)) from e

        self.items: List[ArchiveItem] = []
        self._reset_run_state()

    def _reset_run_state(self) -> None:
        """Forget counters and results of a previous run"""
        self.collisions: List[Tuple[ArchiveItem, Resolution]] = []
        self.skipped: List[ArchiveItem] = []
        self.stage = MergeStage.PENDING
        self._context = ""

        self.stats = {
            "entries_copied": 0,
            "entries_added": 0,
            "items_renamed": 0,
            "items_dropped": 0,
            "items_skipped": 0,
            "bytes_added": 0,
        }

    def _setup_logging(self) -> logging.Logger:
        """Setup structured logging"""
        level = logging.DEBUG if self.config.get("verbose") else logging.INFO

        logger = logging.getLogger("zip_merger")
        logger.setLevel(level)

        # Avoid duplicate handlers
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                "%(asctime)s - %(levelname)s - %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
            )
            handler.setFormatter(formatter)
            logger.addHandler(handler)

        return logger

    def add(self, prefix: str, *sources: Union[str, Path]) -> List[ArchiveItem]:
        """Queue files to be stored as ``prefix + file name``"""
        return [self.add_item(prefix, source) for source in sources]

    def add_item(self, prefix: str, source: Union[str, Path]) -> ArchiveItem:
        source_path = Path(source)
        item = ArchiveItem(source_path, prefix + source_path.name)
        self.items.append(item)
        return item

    @contextlib.contextmanager
    def _step(self, step: int, message: str):
        """Run one protocol step, turning any failure into ArchiveMergeError"""
        self._context = f"({step}) {message}"
        self.logger.debug(self._context)
        try:
            yield
        except ArchiveMergeError:
            raise
        except Exception as e:
            self.logger.error(f"Exception in {self._context}: {e}")
            raise ArchiveMergeError(step, self._context) from e

    def preview(self) -> List[Tuple[ArchiveItem, Resolution]]:
        """Outcome for every queued item, without changing the job or the disk"""
        with self._step(1, f"read entries of {self.destination}"):
            existing = read_entry_index(self.destination)
        return resolve_collisions(existing, self.items, self.rename_on_collision)

    def handle_duplicates(self) -> List[Tuple[ArchiveItem, Resolution]]:
        """Resolve collisions and keep only the items that will be written.

        Returns the items that collided with an existing name, together with
        what happened to them.
        """
        survivors = []
        collisions = []
        for item, outcome in self.preview():
            if isinstance(outcome, Drop):
                self.logger.debug(f"do not include {item.source_path}: {outcome.reason}")
                self.stats["items_dropped"] += 1
                collisions.append((item, outcome))
            elif isinstance(outcome, Rename):
                self.logger.debug(
                    f"renamed entry from '{outcome.original}' to '{outcome.name}'"
                )
                self.stats["items_renamed"] += 1
                collisions.append((item, outcome))
                survivors.append(replace(item, entry_name=outcome.name))
            else:
                survivors.append(item)

        self.items = survivors
        self.collisions = collisions
        return collisions

    def run(self, progress: bool = False) -> Union[int, RunStatus]:
        """Merge the queued items into the destination.

        Returns the number of entries in the new archive, or ``NO_CHANGE``
        when every item was dropped or none of the files could be read.
        Raises ArchiveMergeError on failure.
        """
        start_time = time.time()
        self._reset_run_state()
        self.handle_duplicates()

        if not self.items:
            self.logger.debug(f"abort: no (more) files to add to {self.destination}")
            return NO_CHANGE

        had_destination = self.destination.exists()
        backup = None
        try:
            written = self._write_temp_archive(had_destination, progress)
            if not self.stats["entries_added"]:
                self.logger.warning(
                    f"abort: none of the files could be read, {self.destination} unchanged"
                )
                return NO_CHANGE
            if had_destination:
                backup = self._backup_destination()
            self._install_temp_archive(backup)
            if backup is not None and self.delete_backup_when_finished:
                self._delete_backup(backup)
        finally:
            # once a backup exists the temporary archive is the only new copy
            if self.stage < MergeStage.SWAPPED and backup is None:
                self._discard_temp_archive()

        self.logger.info(
            f"Updated {self.destination}: {self.stats['entries_copied']} existing, "
            f"{self.stats['entries_added']} added "
            f"({format_size(self.stats['bytes_added'])})"
        )
        if self.stats["items_renamed"] or self.stats["items_dropped"]:
            self.logger.info(
                f"Renamed: {self.stats['items_renamed']}, "
                f"Dropped: {self.stats['items_dropped']}, "
                f"Skipped: {self.stats['items_skipped']}"
            )
        self.logger.debug(f"Processing time: {time.time() - start_time:.2f}s")
        return written

    def _write_temp_archive(self, had_destination: bool, progress: bool) -> int:
        """Steps 2-5: build the complete new archive at the temporary path"""
        writer = self._create_temp_archive()
        try:
            if had_destination:
                self._copy_existing_entries(writer, progress)
            self.stage = MergeStage.OLD_COPIED
            self._append_new_items(writer, progress)
            self.stage = MergeStage.NEW_APPENDED
            self._finalize(writer)
        except BaseException:
            self._abandon(writer)
            raise
        return self.stats["entries_copied"] + self.stats["entries_added"]

    def _abandon(self, writer: zipfile.ZipFile) -> None:
        """Close a temporary archive that will be discarded"""
        try:
            writer.close()
        except Exception as e:
            self.logger.warning(f"Could not close temporary file {self.temp_path}: {e}")

    def _create_temp_archive(self) -> zipfile.ZipFile:
        with self._step(2, f"create new result file {self.temp_path}"):
            self.temp_path.unlink(missing_ok=True)
            writer = zipfile.ZipFile(self.temp_path, "w", allowZip64=True)
        self.stage = MergeStage.CREATED
        return writer

    def _copy_existing_entries(self, writer: zipfile.ZipFile, progress: bool) -> None:
        with self._step(
            3, f"copy existing items from {self.destination} to {self.temp_path}"
        ):
            with zipfile.ZipFile(self.destination, "r") as reader:
                entries = reader.infolist()
                with self._progress(len(entries), "Copying entries", progress) as advance:
                    for info in entries:
                        self._context = (
                            f"(3) copy existing item {info.filename} "
                            f"from {self.destination} to {self.temp_path}"
                        )
                        self._copy_entry(reader, writer, info)
                        self.stats["entries_copied"] += 1
                        advance()

    def _copy_entry(
        self, reader: zipfile.ZipFile, writer: zipfile.ZipFile, info: zipfile.ZipInfo
    ) -> None:
        clone = zipfile.ZipInfo(info.filename, date_time=info.date_time)
        clone.compress_type = info.compress_type
        clone.comment = info.comment
        clone.extra = _strip_extra_field(info.extra, ZIP64_EXTRA_ID)
        clone.create_system = info.create_system
        clone.external_attr = info.external_attr
        clone.internal_attr = info.internal_attr
        clone.file_size = info.file_size

        if info.is_dir():
            writer.writestr(clone, b"")
            return
        with reader.open(info) as src, writer.open(clone, "w") as dst:
            shutil.copyfileobj(src, dst, self.buffer_size)

    def _append_new_items(self, writer: zipfile.ZipFile, progress: bool) -> None:
        with self._step(4, f"copy new items to {self.temp_path}"):
            with self._progress(len(self.items), "Adding files", progress) as advance:
                for item in self.items:
                    self._context = (
                        f"(4) copy new item {item.source_path} as {item.entry_name} "
                        f"to {self.temp_path}"
                    )
                    self._add_item(writer, item)
                    advance()

    def _add_item(self, writer: zipfile.ZipFile, item: ArchiveItem) -> None:
        try:
            source = open(item.source_path, "rb")
        except OSError as e:
            self.logger.warning(f"Skipping unreadable file {item.source_path}: {e}")
            self.stats["items_skipped"] += 1
            self.skipped.append(item)
            return

        with source:
            st = os.fstat(source.fileno())
            info = zipfile.ZipInfo(item.entry_name, date_time=_dos_date_time(st.st_mtime))
            info.compress_type = self.compression
            info.external_attr = (stat.S_IMODE(st.st_mode) | stat.S_IFREG) << 16
            info.extra = _extended_timestamp_extra(st.st_mtime)
            info.file_size = st.st_size
            with writer.open(info, "w") as dst:
                shutil.copyfileobj(source, dst, self.buffer_size)

        self.stats["entries_added"] += 1
        self.stats["bytes_added"] += st.st_size

    def _finalize(self, writer: zipfile.ZipFile) -> None:
        with self._step(5, f"finalize new result file {self.temp_path}"):
            writer.close()
        self.stage = MergeStage.FINALIZED

    def _backup_destination(self) -> Path:
        """Step 6: move the current archive out of the way"""
        with self._step(
            6, f"rename old zip file from {self.destination} to {self.backup_path}"
        ):
            self.backup_path.unlink(missing_ok=True)
            os.replace(self.destination, self.backup_path)
        return self.backup_path

    def _install_temp_archive(self, backup: Optional[Path]) -> None:
        """Step 7: swap the new archive in, restoring the backup on failure"""
        try:
            with self._step(
                7, f"rename new created zip file {self.temp_path} to {self.destination}"
            ):
                os.replace(self.temp_path, self.destination)
        except BaseException:
            if backup is not None and self._restore_backup(backup):
                self._discard_temp_archive()
            raise
        self.stage = MergeStage.SWAPPED

    def _restore_backup(self, backup: Path) -> bool:
        """Put the previous archive back; the new one stays at the temporary path otherwise"""
        try:
            os.replace(backup, self.destination)
        except OSError as e:
            self.logger.error(
                f"Could not restore {self.destination} from {backup}, "
                f"new archive left at {self.temp_path}: {e}"
            )
            return False
        self.logger.warning(f"Restored {self.destination} from {backup}")
        return True

    def _delete_backup(self, backup: Path) -> None:
        """Step 8: remove the previous archive; failure only warns"""
        self._context = f"(8) delete existing renamed old zip file {backup}"
        self.logger.debug(self._context)
        try:
            backup.unlink()
        except OSError as e:
            self.logger.warning(f"Could not delete backup {backup}: {e}")
            return
        self.stage = MergeStage.BACKUP_CLEANED

    def _discard_temp_archive(self) -> None:
        """Remove the temporary archive left by a failed run"""
        try:
            self.temp_path.unlink(missing_ok=True)
        except OSError as e:
            self.logger.warning(f"Could not remove temporary file {self.temp_path}: {e}")

    @contextlib.contextmanager
    def _progress(self, total: int, description: str, enabled: bool):
        """Yield a callable advancing a progress display by one step"""
        is_tty = sys.stdout.isatty()
        if enabled and HAS_RICH and is_tty:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                MofNCompleteColumn(),
                TimeElapsedColumn(),
            ) as progress_bar:
                task = progress_bar.add_task(description, total=total)
                yield lambda: progress_bar.update(task, advance=1)
        elif enabled and HAS_TQDM and is_tty:
            with tqdm(total=total, desc=description, unit="entries") as pbar:
                yield lambda: pbar.update(1)
        else:
            yield lambda: None


def create_config_file(config_path: Path) -> bool:
    """Create a default configuration file"""
    default_config = """# Zip Merger Configuration
# Uncomment and modify values as needed

# Remove <archive>.bak after a successful update
# delete_backup_when_finished = true

# Rename colliding files to name(1).ext, name(2).ext, ...
# When false, files whose name already exists in the archive are skipped
# rename_on_collision = true

# Compression for new entries: stored, deflated, bzip2, lzma
# compression = "deflated"

# Buffer size for copying entry content (e.g. "64K", "1M")
# buffer_size = "64K"

# verbose = false
"""

    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as f:
            f.write(default_config)
        return True
    except OSError as e:
        print(f"Error creating config file: {e}", file=sys.stderr)
        return False


def load_config_file(config_path: Path) -> Dict[str, Any]:
    """Load configuration from file; malformed lines are reported and skipped"""
    if not config_path.exists():
        return {}

    config: Dict[str, Any] = {}
    with open(config_path, "r") as f:
        for line_num, line in enumerate(f, 1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue

            if "=" not in line:
                print(
                    f"Warning: Ignoring malformed config line {line_num}: {line}",
                    file=sys.stderr,
                )
                continue

            key, value = line.split("=", 1)
            key = key.strip()
            value = value.strip().strip("\"'")

            if value.lower() in ("true", "false"):
                config[key] = value.lower() == "true"
            elif value.isdigit():
                config[key] = int(value)
            else:
                config[key] = value

    return config


def _describe(outcome: Resolution) -> Tuple[str, str]:
    if isinstance(outcome, Rename):
        return "renamed", outcome.name
    if isinstance(outcome, Drop):
        return "skipped", outcome.reason
    return "added", outcome.name


def print_report(
    rows: List[Tuple[ArchiveItem, Resolution]], title: str, console=None
) -> None:
    """Print what happened to each item"""
    if not rows:
        return
    if HAS_RICH and console:
        table = Table(title=title)
        table.add_column("File")
        table.add_column("Entry")
        table.add_column("Result")
        table.add_column("Details")
        for item, outcome in rows:
            result, details = _describe(outcome)
            table.add_row(str(item.source_path), item.entry_name, result, details)
        console.print(table)
    else:
        print(title)
        for item, outcome in rows:
            result, details = _describe(outcome)
            print(f"  {item.source_path} -> {item.entry_name}: {result} ({details})")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point with comprehensive error handling"""
    parser = argparse.ArgumentParser(
        description="Add files to a zip archive without ever corrupting it",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Add two files to the archive root
  %(prog)s add photos.zip img_001.jpg img_002.jpg

  # Store the files below a folder inside the archive
  %(prog)s add photos.zip img_001.jpg --prefix 2024/

  # Skip files whose name already exists instead of renaming them
  %(prog)s add photos.zip img_001.jpg --no-rename

  # Show what would happen without writing anything
  %(prog)s preview photos.zip img_001.jpg
        """,
    )

    parser.add_argument("operation", help="Operation to perform (add or preview)")
    parser.add_argument("archive", type=Path, help="Destination zip archive")
    parser.add_argument("files", nargs="*", help="Files to add")

    parser.add_argument(
        "-p", "--prefix", default="", help="Path inside the archive, e.g. 'docs/'"
    )
    parser.add_argument(
        "--no-rename",
        action="store_true",
        help="Skip files whose name already exists instead of renaming them",
    )
    parser.add_argument(
        "--keep-backup", action="store_true", help="Keep <archive>.bak after updating"
    )
    parser.add_argument(
        "--compression",
        choices=sorted(COMPRESSION_METHODS),
        default=None,
        help="Compression for new entries",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    parser.add_argument(
        "--no-progress", action="store_true", help="Disable progress bars"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help="Configuration file path",
    )
    parser.add_argument(
        "--create-config", action="store_true", help="Create default config"
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )

    args = parser.parse_args(argv)

    # Fuzzy command matching for typos
    valid_operations = ["add", "preview"]
    if args.operation not in valid_operations:
        close_matches = difflib.get_close_matches(
            args.operation, valid_operations, n=1, cutoff=0.6
        )
        if close_matches:
            print(
                f"Unknown command '{args.operation}'. Did you mean '{close_matches[0]}'?",
                file=sys.stderr,
            )
        else:
            print(
                f"Unknown command '{args.operation}'. Valid commands: {', '.join(valid_operations)}",
                file=sys.stderr,
            )
        return 1

    try:
        if args.create_config:
            if create_config_file(args.config):
                print(f"Created default configuration file: {args.config}")
                return 0
            print(f"Failed to create configuration file: {args.config}")
            return 1

        if not args.files:
            parser.error("at least one file is required")

        config = load_config_file(args.config)
        if args.no_rename:
            config["rename_on_collision"] = False
        if args.keep_backup:
            config["delete_backup_when_finished"] = False
        if args.compression:
            config["compression"] = args.compression
        if args.verbose:
            config["verbose"] = True

        console = Console() if HAS_RICH else None
        job = ArchiveMergeJob(args.archive, config)
        for source in args.files:
            if Path(source).is_dir():
                job.logger.warning(f"Skipping directory {source}")
                continue
            job.add_item(args.prefix, source)

        if args.operation == "preview":
            print_report(job.preview(), f"Preview for {job.destination}", console)
            return 0

        result = job.run(progress=not args.no_progress)
        print_report(job.collisions, "Name collisions", console)
        if result is NO_CHANGE:
            print(f"No change: nothing to add to {job.destination}")
        else:
            print(f"{job.destination}: {result} entries")
        return 0

    except KeyboardInterrupt:
        print("\nOperation cancelled by user", file=sys.stderr)
        return 130
    except ZipMergerError as e:
        print(f"Error: {e}", file=sys.stderr)
        if args.verbose and e.__cause__ is not None:
            traceback.print_exception(
                type(e.__cause__), e.__cause__, e.__cause__.__traceback__
            )
        return 1
    except Exception as e:
        print(f"Unexpected error: {e}", file=sys.stderr)
        if args.verbose:
            traceback.print_exc()
        return 1


def cli_main():
    """Synchronous entry point for console scripts"""
    return main()


if __name__ == "__main__":
    sys.exit(cli_main())
