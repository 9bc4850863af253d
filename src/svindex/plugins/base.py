"""Index listener interface and hook specifications using pluggy."""

from __future__ import annotations

import pluggy

hookspec = pluggy.HookspecMarker("svindex")
hookimpl = pluggy.HookimplMarker("svindex")


class IndexHookSpec:
    """Hook specifications for index change listeners.

    Listeners only need to implement the hooks they care about.
    """

    @hookspec
    def index_rebuilt(self, index: object) -> None:
        """Called when an index reaches the file-tree-valid state.

        Args:
            index: The index whose include graph was just rebuilt.
        """

    @hookspec
    def index_invalidated(self, index: object, reason: str) -> None:
        """Called after an index drops back to the all-invalid state.

        Args:
            index: The invalidated index.
            reason: Short description, e.g. 'File Removed'.
        """


class IndexListener:
    """Base class for index change listeners.

    Subclass and decorate the hooks you need with @hookimpl::

        from svindex.plugins.base import IndexListener, hookimpl

        class RefreshOutline(IndexListener):
            name = "refresh-outline"

            @hookimpl
            def index_rebuilt(self, index):
                outline_view.refresh()
    """

    name: str = ""
