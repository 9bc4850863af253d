"""Index over the files named by a simulator argument (``.f``) file.

Recognised arguments::

    +incdir+<dir>[+<dir>...]     include-search directories
    -incdir <dir>
    +define+<N>[=<V>][+...]      defines
    -define <N>[=<V>]
    -f <file> / -F <file>        nested argument file
    <path>                       source file

Other ``+option`` and ``-option`` arguments are ignored.  Relative paths are
resolved against the directory of the argument file that names them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from svindex.index.base import AbstractIndex, Discovery
from svindex.index.fs import FileSystemProvider
from svindex.index.paths import dirname, is_absolute, join_path, normalize_path
from svindex.parser.lexical import mask_comments
from svindex.parser.preproc import decode_source

logger = logging.getLogger(__name__)

# Options whose value is the following argument and which this index ignores.
_VALUE_OPTIONS = frozenset({"-y", "-v", "-l", "-o", "-top", "-timescale"})


@dataclass
class ArgFileContents:
    source_files: list[str] = field(default_factory=list)
    include_paths: list[str] = field(default_factory=list)
    defines: dict[str, str] = field(default_factory=dict)
    arg_files: list[str] = field(default_factory=list)


def _split_define(text: str) -> tuple[str, str]:
    name, _, value = text.partition("=")
    return name.strip(), value.strip()


def parse_arg_file(
    path: str,
    fs: FileSystemProvider,
    contents: ArgFileContents | None = None,
) -> ArgFileContents:
    """Read *path* and any nested argument files it names."""
    contents = contents or ArgFileContents()
    path = normalize_path(path)
    if path in contents.arg_files:
        logger.warning("Argument file %s includes itself; skipping", path)
        return contents
    contents.arg_files.append(path)

    data = fs.open_stream(path)
    if data is None:
        logger.warning("Cannot read argument file %s", path)
        return contents

    base = dirname(path)

    def resolve(arg: str) -> str:
        return normalize_path(arg if is_absolute(arg) else join_path(base, arg))

    tokens = mask_comments(decode_source(data)).split()
    i = 0
    while i < len(tokens):
        tok = tokens[i]
        nxt = tokens[i + 1] if i + 1 < len(tokens) else None
        if tok.startswith("+incdir+"):
            contents.include_paths.extend(resolve(d) for d in tok[len("+incdir+"):].split("+") if d)
        elif tok.startswith("+define+"):
            for item in tok[len("+define+"):].split("+"):
                if item:
                    name, value = _split_define(item)
                    contents.defines[name] = value
        elif tok == "-incdir" and nxt is not None:
            contents.include_paths.append(resolve(nxt))
            i += 1
        elif tok == "-define" and nxt is not None:
            name, value = _split_define(nxt)
            contents.defines[name] = value
            i += 1
        elif tok in ("-f", "-F") and nxt is not None:
            parse_arg_file(resolve(nxt), fs, contents)
            i += 1
        elif tok in _VALUE_OPTIONS:
            i += 1
        elif tok.startswith("+") or tok.startswith("-"):
            logger.debug("Ignoring argument %s in %s", tok, path)
        else:
            contents.source_files.append(resolve(tok))
        i += 1
    return contents


class ArgFileIndex(AbstractIndex):
    """``base_location`` is the path of the top-level argument file."""

    def discover(self) -> Discovery:
        contents = parse_arg_file(self.get_resolved_base_location(), self.fs)
        return Discovery(
            root_files=contents.source_files,
            include_paths=contents.include_paths,
            defines=contents.defines,
            control_files=contents.arg_files,
        )
