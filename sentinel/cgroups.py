"""
Sentinel Cgroup Access

Discovers container scopes under the cgroup namespace root, and reads and parses the
live process list of each scope.
"""

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

import aiofiles
import aiofiles.os

from sentinel.exceptions import EnumerationError
from sentinel.logger import SentinelLogger

logger = SentinelLogger.get_logger("cgroups")


@dataclass(frozen=True)
class Unit:
    """
    One monitored container scope.

    Attributes:
        id: Container id, the directory name with the managing prefix and suffix stripped
        name: Raw cgroup directory name (e.g. 'docker-<id>.scope')
        procs_path: Path of the scope's live process list
    """

    id: str
    name: str
    procs_path: Path


def unit_id_from_name(name: str, prefix: str, suffix: str) -> str:
    """
    Strip the managing prefix and suffix from a cgroup directory name.

    >>> unit_id_from_name("docker-abc.scope", "docker-", ".scope")
    'abc'
    """
    unit_id = name.removeprefix(prefix)
    if suffix:
        unit_id = unit_id.removesuffix(suffix)
    return unit_id


async def enumerate_units(
    root: Path,
    prefix: str = "docker-",
    suffix: str = ".scope",
    procs_file: str = "cgroup.procs",
) -> list[Unit]:
    """
    List the container scopes under the namespace root.

    Entries that are not directories or do not start with ``prefix`` are skipped.

    Args:
        root: cgroup directory containing the container scopes
        prefix: Directory name prefix identifying container-managed cgroups
        suffix: Directory name suffix stripped from the container id
        procs_file: Name of the live process list inside each scope

    Returns:
        Units sorted by directory name

    Raises:
        EnumerationError: If ``root`` cannot be listed
    """
    root = Path(root)
    try:
        names = await aiofiles.os.listdir(root)
    except OSError as e:
        raise EnumerationError(f"Cannot list cgroup root {root}: {e}") from e

    units = []
    for name in sorted(names):
        if not name.startswith(prefix):
            continue
        path = root / name
        if not await aiofiles.os.path.isdir(path):
            continue
        unit_id = unit_id_from_name(name, prefix, suffix)
        if not unit_id:
            continue
        units.append(Unit(id=unit_id, name=name, procs_path=path / procs_file))

    return units


def parse_pids(content: str) -> set[int]:
    """
    Parse a newline-separated pid list, dropping lines that are not integers.

    Args:
        content: Raw contents of a cgroup.procs file

    Returns:
        Set of pids
    """
    pids = set()
    for line in content.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            pids.add(int(line))
        except ValueError:
            logger.debug(f"Dropping malformed pid line: {line!r}")
    return pids


async def read_pids(procs_path: Path) -> set[int] | None:
    """
    Read a unit's live pid set.

    Args:
        procs_path: Path of the cgroup.procs file

    Returns:
        The parsed pid set, or None if the file does not exist (the unit is gone)

    Raises:
        OSError: For any read failure other than the file being absent
    """
    if not await aiofiles.os.path.exists(procs_path):
        return None
    try:
        async with aiofiles.open(procs_path) as f:
            content = await f.read()
    except FileNotFoundError:
        # Removed between the existence check and the read
        return None
    return parse_pids(content)


async def _read_baseline(unit: Unit) -> set[int] | None:
    try:
        pids = await read_pids(unit.procs_path)
    except OSError as e:
        logger.warning(f"Unit {unit.id} excluded from protection: cannot read baseline: {e}")
        return None

    if pids is None:
        logger.warning(
            f"Unit {unit.id} excluded from protection: {unit.procs_path} does not exist"
        )
    return pids


async def build_baseline(units: Iterable[Unit]) -> dict[Unit, set[int]]:
    """
    Record the current pid set of every unit as its trusted baseline.

    Units whose process list is missing or unreadable get no entry and are therefore
    never monitored. A readable but empty list yields an empty baseline.

    Args:
        units: Units returned by enumerate_units

    Returns:
        Mapping from unit to its initial known pid set, in input order
    """
    units = list(units)
    results = await asyncio.gather(*(_read_baseline(unit) for unit in units))
    return {unit: pids for unit, pids in zip(units, results) if pids is not None}
