"""Source scanners: pre-processor directives and structural declarations."""

from svindex.parser.factory import FileFactory, LexicalFileFactory
from svindex.parser.preproc import PreProcScanner, decode_source

__all__ = ["FileFactory", "LexicalFileFactory", "PreProcScanner", "decode_source"]
