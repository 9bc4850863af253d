"""Pure-string path helpers.

Nothing here touches the file system: paths are canonicalised textually so
that resolution is deterministic and cheap to call from every job.
"""

from __future__ import annotations

WORKSPACE_TOKEN = "${workspace_loc}"


def normalize_path(path: str) -> str:
    """Collapse redundant separators, ``.`` and ``..`` segments.

    Leading ``..`` segments of a relative path are kept; ``..`` above the
    root of an absolute path is dropped.  Backslashes become ``/``.
    """
    if not path:
        return path
    path = path.replace("\\", "/")

    prefix = ""
    if path.startswith(WORKSPACE_TOKEN):
        prefix = WORKSPACE_TOKEN
        path = path[len(WORKSPACE_TOKEN):]
    absolute = path.startswith("/")

    kept: list[str] = []
    skip = 0
    # Walk right-to-left so each ".." cancels the segment before it.
    for seg in reversed(path.split("/")):
        if seg in ("", "."):
            continue
        if seg == "..":
            skip += 1
            continue
        if skip:
            skip -= 1
            continue
        kept.append(seg)
    if skip and not absolute and not prefix:
        kept.extend([".."] * skip)

    body = "/".join(reversed(kept))
    if prefix:
        return f"{prefix}/{body}" if body else prefix
    if absolute:
        return "/" + body
    return body or "."


def join_path(base: str, leaf: str) -> str:
    if not base:
        return leaf
    return base.rstrip("/") + "/" + leaf


def dirname(path: str) -> str:
    idx = path.rstrip("/").rfind("/")
    if idx == -1:
        return ""
    if idx == 0:
        return "/"
    return path[:idx]


def is_absolute(path: str) -> bool:
    return path.startswith("/") or path.startswith(WORKSPACE_TOKEN) or (
        len(path) > 2 and path[1] == ":" and path[2] in "/\\"
    )


def expand_workspace(path: str, workspace_root: str | None) -> str:
    """Replace the workspace token with *workspace_root* (when configured)."""
    if workspace_root and path.startswith(WORKSPACE_TOKEN):
        return normalize_path(workspace_root.rstrip("/") + path[len(WORKSPACE_TOKEN):])
    return path


def to_workspace_relative(path: str, workspace_root: str | None) -> str | None:
    """Return *path* rewritten under the workspace token, or None if outside it."""
    if not workspace_root:
        return None
    root = normalize_path(workspace_root).rstrip("/")
    norm = normalize_path(path)
    if norm == root:
        return WORKSPACE_TOKEN
    if norm.startswith(root + "/"):
        return WORKSPACE_TOKEN + norm[len(root):]
    return None
