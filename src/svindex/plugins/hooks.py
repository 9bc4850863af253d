"""Hook execution engine wrapping pluggy with error handling."""

from __future__ import annotations

import logging
from typing import Any

import pluggy

logger = logging.getLogger(__name__)


class HookRunner:
    """Runs listener hooks so that a broken listener cannot break an index.

    Each implementation is called on its own: an exception in one is logged
    and the remaining listeners still run.
    """

    def __init__(self, plugin_manager: pluggy.PluginManager) -> None:
        self._pm = plugin_manager

    def _call_each(self, hook_name: str, **kwargs: Any) -> None:
        caller = getattr(self._pm.hook, hook_name)
        for impl in caller.get_hookimpls():
            args = {name: kwargs[name] for name in impl.argnames if name in kwargs}
            try:
                impl.function(**args)
            except Exception:
                logger.exception(
                    "Error running %s hook in listener %s", hook_name, impl.plugin_name
                )

    def run_index_rebuilt(self, index: object) -> None:
        """Run index_rebuilt hooks for all registered listeners."""
        self._call_each("index_rebuilt", index=index)

    def run_index_invalidated(self, index: object, reason: str) -> None:
        """Run index_invalidated hooks for all registered listeners."""
        self._call_each("index_invalidated", index=index, reason=reason)
