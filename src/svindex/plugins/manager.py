"""Listener manager - registers and removes index change listeners."""

from __future__ import annotations

import logging
import threading

import pluggy

from svindex.plugins.base import IndexHookSpec
from svindex.plugins.hooks import HookRunner

logger = logging.getLogger(__name__)


class ListenerManager:
    """Holds the change listeners of one index.

    Uses pluggy under the hood.  Any object whose methods are decorated
    with @hookimpl can be registered; ``IndexListener`` subclasses are the
    usual choice.

    Example::

        listeners = ListenerManager()
        listeners.add(MyListener())
        listeners.hooks.run_index_rebuilt(index)
    """

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager("svindex")
        self._pm.add_hookspecs(IndexHookSpec)
        self._hooks = HookRunner(self._pm)
        self._lock = threading.Lock()
        self._listeners: list[object] = []

    def add(self, listener: object) -> None:
        """Register a listener.

        Raises:
            TypeError: If *listener* implements none of the index hooks.
            ValueError: If the same listener object is already registered.
        """
        if listener is None or isinstance(listener, (str, bytes, int, float, type)):
            raise TypeError(f"Expected a listener object, got {type(listener).__name__}")
        with self._lock:
            if any(existing is listener for existing in self._listeners):
                raise ValueError("Listener is already registered")
            label = getattr(listener, "name", "") or type(listener).__name__
            name = f"{label}-{id(listener)}"
            self._pm.register(listener, name=name)
            if not self._pm.get_hookcallers(listener):
                self._pm.unregister(listener)
                raise TypeError(
                    f"{type(listener).__name__} implements no index hooks; "
                    "decorate methods with @hookimpl"
                )
            self._listeners = [*self._listeners, listener]
        logger.debug("Added index listener %s", name)

    def remove(self, listener: object) -> bool:
        """Unregister a listener.  Returns False if it was not registered."""
        with self._lock:
            if not any(existing is listener for existing in self._listeners):
                return False
            self._pm.unregister(listener)
            self._listeners = [p for p in self._listeners if p is not listener]
        return True

    @property
    def hooks(self) -> HookRunner:
        """Access the hook runner for notifying listeners."""
        return self._hooks

    @property
    def listener_count(self) -> int:
        return len(self._listeners)
