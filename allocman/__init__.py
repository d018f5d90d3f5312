"""
allocman - Allocator lifecycle manager

Stores, validates, compiles and hot-swaps pluggable scheduling strategies
("allocators") that a distributed-systems simulator invokes to assign jobs
to resources.
"""

__version__ = "0.1.0"
__author__ = "allocman developers"


__all__ = [
    "AllocmanConfig",
    "load_config",
    "get_allocman_home",
    "AllocatorRegistry",
    "EditorSession",
]

from .config import AllocmanConfig, load_config, get_allocman_home
from .registry import AllocatorRegistry
from .session import EditorSession
