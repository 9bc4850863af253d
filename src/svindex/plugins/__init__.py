"""Index change listeners powered by pluggy."""

from svindex.plugins.base import IndexHookSpec, IndexListener, hookimpl, hookspec
from svindex.plugins.hooks import HookRunner
from svindex.plugins.manager import ListenerManager

__all__ = [
    "HookRunner",
    "IndexHookSpec",
    "IndexListener",
    "ListenerManager",
    "hookimpl",
    "hookspec",
]
