"""svindex - incremental SystemVerilog symbol index."""

import logging
import sys
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

_HELP = """\
Usage: svindex index   [--dir <path> | --argfile <file>] [--threads] [--sqlite]
       svindex files   [--dir <path> | --argfile <file>]
       svindex find    <name> [--dir <path> | --argfile <file>] [--icase | --prefix]
       svindex markers [--dir <path> | --argfile <file>]

Options:
  --dir <path>       Index every source file below <path> (default: cwd)
  --argfile <file>   Index the files named by an argument (.f) file
  --threads          Run per-file jobs on a worker pool
  --sqlite           Persist the index under <dir>/.svindex/
  --icase            Case-insensitive name match (find)
  --prefix           Prefix name match (find)
  --help, -h         Show this help message and exit
"""


@dataclass
class IndexFlags:
    """Flags shared by every sub-command."""

    project_dir: Path
    argfile: Path | None = None
    threads: bool = False
    sqlite: bool = False
    matcher: str = "exact"
    name: str | None = None


def main() -> None:
    """Entry point for the svindex CLI."""
    args = sys.argv[1:]

    if not args or args[0] in ("--help", "-h"):
        print(_HELP)
        sys.exit(0)

    from svindex.core.config import EnvSettings

    logging.basicConfig(
        level=EnvSettings().log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    command, rest = args[0], args[1:]
    if command == "index":
        _run_index(rest)
    elif command == "files":
        _run_files(rest)
    elif command == "find":
        _run_find(rest)
    elif command == "markers":
        _run_markers(rest)
    else:
        print(f"Unknown command: {command}")
        print("Run 'svindex --help' for usage.")
        sys.exit(1)


def _parse_flags(args: list[str], allow_name: bool = False) -> IndexFlags:
    """Parse sub-command flags from argv."""
    flags = IndexFlags(project_dir=Path.cwd())
    i = 0
    while i < len(args):
        arg = args[i]
        if arg == "--dir" and i + 1 < len(args):
            flags.project_dir = Path(args[i + 1])
            i += 2
        elif arg == "--argfile" and i + 1 < len(args):
            flags.argfile = Path(args[i + 1])
            i += 2
        elif arg == "--threads":
            flags.threads = True
            i += 1
        elif arg == "--sqlite":
            flags.sqlite = True
            i += 1
        elif arg == "--icase":
            flags.matcher = "icase"
            i += 1
        elif arg == "--prefix":
            flags.matcher = "prefix"
            i += 1
        elif allow_name and flags.name is None and not arg.startswith("-"):
            flags.name = arg
            i += 1
        else:
            print(f"Unknown argument: {arg}")
            print("Run 'svindex --help' for usage.")
            sys.exit(1)
    return flags


def _open_index(flags: IndexFlags):
    """Build the index described by *flags* and load it to AllFilesParsed."""
    from svindex.core.config import CacheBackend, load_config
    from svindex.index import (
        ArgFileIndex,
        InMemoryIndexCache,
        LocalFileSystemProvider,
        SourceCollectionIndex,
        SqliteIndexCache,
    )

    project_dir = flags.project_dir.resolve()
    if not project_dir.is_dir():
        raise FileNotFoundError(f"Directory not found: {project_dir}")

    config = load_config(project_dir)
    if flags.threads:
        config = config.model_copy(
            update={"index": config.index.model_copy(update={"enable_threads": True})}
        )

    if flags.sqlite or config.cache.backend == CacheBackend.SQLITE:
        cache = SqliteIndexCache(config.cache.db_path(project_dir))
    else:
        cache = InMemoryIndexCache()

    fs = LocalFileSystemProvider(workspace_root=config.index.workspace_root)
    if flags.argfile is not None:
        argfile = flags.argfile.resolve()
        if not argfile.is_file():
            raise FileNotFoundError(f"Argument file not found: {argfile}")
        index = ArgFileIndex(str(argfile), fs, cache=cache, config=config.index)
    else:
        index = SourceCollectionIndex(str(project_dir), fs, cache=cache, config=config.index)

    index.init()
    index.load_index()
    return index


def _run_index(args: list[str]) -> None:
    """Load the index and print a summary."""
    flags = _parse_flags(args)
    index = _open_index(flags)
    try:
        files = index.get_file_list()
        marker_count = sum(len(index.get_markers(p)) for p in files)
        print(f"Indexed {index.base_location}")
        print(
            f"Total: {len(files)} files · {index.decl_cache.count()} declarations · "
            f"{marker_count} markers"
        )
        missing = sorted(index.cache_data.missing_includes)
        if missing:
            print(f"Missing includes: {', '.join(missing)}")
    finally:
        index.dispose()


def _run_files(args: list[str]) -> None:
    flags = _parse_flags(args)
    index = _open_index(flags)
    try:
        for path in sorted(index.get_file_list()):
            print(path)
    finally:
        index.dispose()


def _run_find(args: list[str]) -> None:
    """Print declarations matching a name."""
    flags = _parse_flags(args, allow_name=True)
    if not flags.name:
        print("Usage: svindex find <name> [--dir <path>] [--icase | --prefix]")
        sys.exit(1)

    from rich.console import Console
    from rich.table import Table

    index = _open_index(flags)
    try:
        decls = index.find_global_scope_decl(flags.name, flags.matcher)
        if not decls:
            print(f"No declarations match '{flags.name}'")
            return
        table = Table(title=f"svindex find {flags.name}", show_header=True, header_style="bold cyan")
        table.add_column("Name", style="cyan")
        table.add_column("Kind", style="green")
        table.add_column("Scope", style="dim")
        table.add_column("Location")
        for d in sorted(decls, key=lambda e: (e.filename, e.line)):
            table.add_row(d.name, d.type.value, d.scope, f"{d.filename}:{d.line}")
        Console().print(table)
    finally:
        index.dispose()


def _run_markers(args: list[str]) -> None:
    """Print every marker in the index."""
    flags = _parse_flags(args)
    index = _open_index(flags)
    try:
        total = 0
        for path in sorted(index.get_file_list()):
            for marker in index.get_markers(path):
                print(f"{path}: {marker}")
                total += 1
        print(f"{total} marker(s)")
    finally:
        index.dispose()


if __name__ == "__main__":
    main()
