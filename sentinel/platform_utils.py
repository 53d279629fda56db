"""
Sentinel Platform Detection Utilities

Locates the cgroup hierarchy that holds container scopes and the Docker daemon socket
for the running host.
"""

import os
import platform
from pathlib import Path

CGROUP_MOUNT = Path("/sys/fs/cgroup")


def get_platform() -> str:
    """
    Get the current operating system name.

    Returns:
        'Linux', 'Windows', or 'Darwin' (macOS)
    """
    return platform.system()


def is_in_docker() -> bool:
    """
    Detect if the current process is running inside a Docker container.

    Returns:
        True if running in Docker, False otherwise
    """
    return Path("/.dockerenv").exists()


def is_cgroup_v2(mount: Path = CGROUP_MOUNT) -> bool:
    """
    Detect the unified (v2) cgroup hierarchy.

    Args:
        mount: cgroup filesystem mount point

    Returns:
        True if the unified hierarchy is mounted at ``mount``
    """
    return (mount / "cgroup.controllers").exists()


def get_cgroup_root(mount: Path = CGROUP_MOUNT) -> Path:
    """
    Get the directory under which systemd places Docker container scopes.

    With the systemd cgroup driver every container lives in
    ``system.slice/docker-<id>.scope``. On cgroup v1 hosts the named ``systemd``
    hierarchy carries the same layout.

    Args:
        mount: cgroup filesystem mount point

    Returns:
        Path of the slice containing container scopes
    """
    if is_cgroup_v2(mount):
        return mount / "system.slice"
    return mount / "systemd" / "system.slice"


def get_docker_host() -> str:
    """
    Get the Docker daemon socket the SDK will talk to.

    Returns:
        DOCKER_HOST if set, otherwise the platform's default socket
    """
    docker_host = os.getenv("DOCKER_HOST")
    if docker_host:
        return docker_host

    if get_platform() == "Windows" and not is_in_docker():
        return "npipe:////./pipe/docker_engine"
    return "unix:///var/run/docker.sock"


def get_platform_display() -> str:
    """
    Get a human-readable platform description for logging.

    Returns:
        Platform description string, e.g. 'Linux cgroup v2 (local)'
    """
    system = get_platform()
    docker_status = " (in Docker)" if is_in_docker() else " (local)"

    if system != "Linux":
        return f"{system}{docker_status}"

    version = "v2" if is_cgroup_v2() else "v1"
    return f"Linux cgroup {version}{docker_status}"
