"""
Sentinel Responder Package

Restarts containers in which an unexpected process was detected.
"""

from .responder import ContainerResponder

__all__ = ["ContainerResponder"]
