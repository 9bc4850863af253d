"""Index over every source file below a directory."""

from __future__ import annotations

import logging

from svindex.index.base import AbstractIndex, Discovery
from svindex.index.paths import join_path

logger = logging.getLogger(__name__)


class SourceCollectionIndex(AbstractIndex):
    """Root files are all files under the base directory with a source suffix.

    Every directory holding a discovered file is also an include-search
    directory, so ``include "x.svh"`` finds headers anywhere in the tree.
    """

    def get_resolved_base_location_dir(self) -> str:
        return self.get_resolved_base_location()

    def discover(self) -> Discovery:
        base = self.get_resolved_base_location()
        extensions = {ext.lower() for ext in self.config.source_extensions}
        skip_dirs = set(self.config.skip_dirs)

        roots: list[str] = []
        dirs: list[str] = []
        pending = [base]
        while pending:
            directory = pending.pop()
            found_here = False
            for name in self.fs.list_dir(directory):
                path = join_path(directory, name)
                if self.fs.is_dir(path):
                    if name not in skip_dirs:
                        pending.append(path)
                    continue
                dot = name.rfind(".")
                if dot != -1 and name[dot:].lower() in extensions:
                    roots.append(path)
                    found_here = True
            if found_here:
                dirs.append(directory)

        logger.debug("Source collection %s: %d file(s) in %d dir(s)", base, len(roots), len(dirs))
        return Discovery(root_files=sorted(roots), include_paths=sorted(dirs))
