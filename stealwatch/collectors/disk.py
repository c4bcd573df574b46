"""Disk latency probes and block-device counters.

Latency tests create and remove their own files under a test directory that
is chosen to live on real storage: memory-backed mounts would measure RAM.
"""
import logging
import mmap
import os
import random
import re
import tempfile
import time
from dataclasses import dataclass
from typing import Optional, Tuple

from stealwatch.core.exceptions import CollectError
from stealwatch.models.stats import StorageType


BLOCK_SIZE = 4096
SECTOR_SIZE = 512
RANDOM_IO_SPAN_BLOCKS = 256
TEST_DIR_CANDIDATES = ('/tmp', '/var/tmp')
MEMORY_FILESYSTEMS = ('tmpfs', 'ramfs')
VIRTUAL_DEVICE_PREFIXES = ('loop', 'ram', 'zram', 'dm-')

# nvme0n1 and mmcblk0 end in a digit but are whole devices
_WHOLE_DISK = re.compile(r'^(nvme\d+n\d+|mmcblk\d+)$')
_PARTITION = re.compile(r'([a-z]\d+|\dp\d+)$')


@dataclass(frozen=True)
class SequentialIOResult:
    write_latency_ms: float
    sync_latency_ms: float
    total_latency_ms: float


@dataclass(frozen=True)
class RandomIOResult:
    write_latency_ms: float
    read_latency_ms: float
    used_direct_io: bool


@dataclass(frozen=True)
class DiskStats:
    read_ops: int = 0
    write_ops: int = 0
    read_bytes: int = 0
    write_bytes: int = 0
    io_time_ms: int = 0
    weighted_io_ms: int = 0


def _ms(seconds: float) -> float:
    return round(seconds * 1000, 3)


def read_mounts(mounts_path='/proc/mounts'):
    """Return (mount_point, fs_type) pairs from the live mount table."""
    entries = []
    with open(mounts_path) as f:
        for line in f:
            parts = line.split()
            if len(parts) >= 3:
                entries.append((parts[1], parts[2]))
    return entries


def mount_fs_type(path, mounts) -> Optional[str]:
    """Filesystem type of the longest mount point containing ``path``."""
    best, best_type = None, None
    for mount_point, fs_type in mounts:
        if mount_point == '/':
            matches = path.startswith('/')
        else:
            matches = path == mount_point or path.startswith(mount_point.rstrip('/') + '/')
        if matches and (best is None or len(mount_point) > len(best)):
            best, best_type = mount_point, fs_type
    return best_type


def is_memory_backed(path, mounts_path='/proc/mounts') -> bool:
    try:
        mounts = read_mounts(mounts_path)
    except OSError as e:
        logging.warning(f"Cannot read mount table {mounts_path}: {e}")
        return False
    return mount_fs_type(os.path.realpath(path), mounts) in MEMORY_FILESYSTEMS


def select_test_dir(candidates=TEST_DIR_CANDIDATES, mounts_path='/proc/mounts') -> str:
    for candidate in candidates:
        if not os.path.isdir(candidate) or not os.access(candidate, os.W_OK):
            continue
        if is_memory_backed(candidate, mounts_path):
            logging.info(f"Skipping I/O test dir {candidate}: memory-backed filesystem")
            continue
        return candidate
    return os.getcwd()


def open_direct(path, flags, mode=0o600) -> Tuple[int, bool]:
    """Open ``path`` bypassing the page cache when the filesystem allows it.

    Returns the descriptor and whether O_DIRECT is in effect.
    """
    direct = getattr(os, 'O_DIRECT', 0)
    if direct:
        try:
            return os.open(path, flags | direct, mode), True
        except OSError as e:
            logging.debug(f"O_DIRECT rejected for {path} ({e}), using buffered I/O")
    return os.open(path, flags, mode), False


def is_partition(name: str) -> bool:
    if _WHOLE_DISK.match(name):
        return False
    return bool(_PARTITION.search(name))


def parse_diskstats(text: str) -> DiskStats:
    totals = dict(read_ops=0, write_ops=0, read_bytes=0, write_bytes=0, io_time_ms=0, weighted_io_ms=0)
    for line in text.splitlines():
        parts = line.split()
        if len(parts) < 14:
            continue
        dev = parts[2]
        if dev.startswith(VIRTUAL_DEVICE_PREFIXES) or is_partition(dev):
            continue
        try:
            totals['read_ops'] += int(parts[3])
            totals['read_bytes'] += int(parts[5]) * SECTOR_SIZE
            totals['write_ops'] += int(parts[7])
            totals['write_bytes'] += int(parts[9]) * SECTOR_SIZE
            totals['io_time_ms'] += int(parts[12])
            totals['weighted_io_ms'] += int(parts[13])
        except ValueError as e:
            raise CollectError(f"cannot parse diskstats row for {dev}: {e}") from e
    return DiskStats(**totals)


def disk_busy_percent(prev: DiskStats, curr: DiskStats, elapsed_seconds: float) -> float:
    """Share of wall time the devices spent on I/O between two snapshots."""
    if elapsed_seconds <= 0:
        return 0.0
    busy_ms = curr.io_time_ms - prev.io_time_ms
    if busy_ms <= 0:
        return 0.0
    return min(busy_ms / (elapsed_seconds * 1000) * 100, 100.0)


def detect_storage_type_by_latency(random_read_latency_ms: float) -> StorageType:
    """Classify storage from a random 4KB read latency; 2-5ms is left Unknown."""
    if random_read_latency_ms <= 0:
        return StorageType.UNKNOWN
    if random_read_latency_ms < 2.0:
        return StorageType.SSD
    if random_read_latency_ms > 5.0:
        return StorageType.HDD
    return StorageType.UNKNOWN


class DiskLatencyProbe:
    def __init__(self, test_size_mb=4, test_dir=None, mounts_path='/proc/mounts',
                 sys_block_path='/sys/block', diskstats_path='/proc/diskstats'):
        self.test_size = test_size_mb * 1024 * 1024
        self.test_dir = test_dir or select_test_dir(mounts_path=mounts_path)
        self.sys_block_path = sys_block_path
        self.diskstats_path = diskstats_path
        logging.info(f"Disk probe using test directory {self.test_dir}")

    def test_write_latency(self) -> SequentialIOResult:
        try:
            data = os.urandom(self.test_size)
        except (OSError, NotImplementedError) as e:
            raise CollectError(f"cannot generate test data: {e}") from e

        try:
            fd, path = tempfile.mkstemp(prefix='stealwatch-io-test-', dir=self.test_dir)
        except OSError as e:
            raise CollectError(f"cannot create test file in {self.test_dir}: {e}") from e

        try:
            with os.fdopen(fd, 'wb') as f:
                start = time.perf_counter()
                f.write(data)
                f.flush()
                write_elapsed = time.perf_counter() - start

                start = time.perf_counter()
                os.fsync(f.fileno())
                sync_elapsed = time.perf_counter() - start
        except OSError as e:
            raise CollectError(f"sequential write test failed: {e}") from e
        finally:
            _remove_quietly(path)

        return SequentialIOResult(
            write_latency_ms=_ms(write_elapsed),
            sync_latency_ms=_ms(sync_elapsed),
            total_latency_ms=_ms(write_elapsed + sync_elapsed),
        )

    def test_random_io(self) -> RandomIOResult:
        """One aligned 4KB write+fsync and one 4KB read at a random offset.

        This is a single operation, not a distribution; percentiles come from
        aggregating repeated scheduled runs.
        """
        try:
            fd, path = tempfile.mkstemp(prefix='stealwatch-random-io-', dir=self.test_dir)
            os.close(fd)
        except OSError as e:
            raise CollectError(f"cannot create test file in {self.test_dir}: {e}") from e

        # Anonymous mappings are page-aligned, as O_DIRECT requires
        write_buf = mmap.mmap(-1, BLOCK_SIZE)
        read_buf = mmap.mmap(-1, BLOCK_SIZE)
        offset = random.randrange(RANDOM_IO_SPAN_BLOCKS) * BLOCK_SIZE
        try:
            write_buf.write(os.urandom(BLOCK_SIZE))

            start = time.perf_counter()
            fd, write_direct = open_direct(path, os.O_WRONLY | os.O_TRUNC)
            try:
                if os.pwrite(fd, write_buf, offset) != BLOCK_SIZE:
                    raise CollectError("short write during random I/O test")
                os.fsync(fd)
            finally:
                os.close(fd)
            write_elapsed = time.perf_counter() - start

            start = time.perf_counter()
            fd, read_direct = open_direct(path, os.O_RDONLY)
            try:
                read = os.preadv(fd, [read_buf], offset)
            finally:
                os.close(fd)
            read_elapsed = time.perf_counter() - start
            if read != BLOCK_SIZE:
                raise CollectError(f"short read during random I/O test ({read} bytes)")
        except OSError as e:
            raise CollectError(f"random I/O test failed: {e}") from e
        finally:
            write_buf.close()
            read_buf.close()
            _remove_quietly(path)

        return RandomIOResult(
            write_latency_ms=_ms(write_elapsed),
            read_latency_ms=_ms(read_elapsed),
            used_direct_io=write_direct and read_direct,
        )

    def detect_storage_type(self) -> StorageType:
        """Read queue/rotational for the first physical block device."""
        try:
            names = sorted(os.listdir(self.sys_block_path))
        except OSError:
            return StorageType.UNKNOWN

        for name in names:
            if name.startswith(VIRTUAL_DEVICE_PREFIXES):
                continue
            try:
                with open(os.path.join(self.sys_block_path, name, 'queue', 'rotational')) as f:
                    value = f.read().strip()
            except OSError:
                continue
            if value == '0':
                return StorageType.SSD
            if value == '1':
                return StorageType.HDD
        return StorageType.UNKNOWN

    def read_disk_stats(self) -> DiskStats:
        try:
            with open(self.diskstats_path) as f:
                text = f.read()
        except OSError as e:
            raise CollectError(f"cannot read {self.diskstats_path}: {e}") from e
        return parse_diskstats(text)


def _remove_quietly(path):
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logging.warning(f"Could not remove test file {path}: {e}")
