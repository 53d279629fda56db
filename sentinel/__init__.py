"""
Cgroup Sentinel

Watches the processes inside each container's cgroup and restarts any container in which a
process appears that was not part of its startup baseline.
"""

__version__ = "0.1.0"
