"""Comment and string masking shared by the pre-processor and the file factory."""

from __future__ import annotations


def mask_comments(text: str, mask_strings: bool = False) -> str:
    """Blank out comments (and optionally string bodies) with spaces.

    Line count and character offsets are preserved so locations computed on
    the masked text are valid for the original.  String delimiters are kept
    when *mask_strings* is set; only their contents are blanked.
    """
    chars = list(text)
    length = len(text)
    i = 0
    state: str | None = None

    while i < length:
        ch = text[i]
        nxt = text[i + 1] if i + 1 < length else ""

        if state is None:
            if ch == "/" and nxt == "/":
                state = "line"
                chars[i] = chars[i + 1] = " "
                i += 2
                continue
            if ch == "/" and nxt == "*":
                state = "block"
                chars[i] = chars[i + 1] = " "
                i += 2
                continue
            if ch == '"':
                state = "string"
            i += 1
            continue

        if state == "line":
            if ch == "\n":
                state = None
            else:
                chars[i] = " "
            i += 1
            continue

        if state == "block":
            if ch == "*" and nxt == "/":
                chars[i] = chars[i + 1] = " "
                state = None
                i += 2
                continue
            if ch != "\n":
                chars[i] = " "
            i += 1
            continue

        # string
        if ch == "\\" and nxt:
            if mask_strings:
                chars[i] = " "
                if nxt != "\n":
                    chars[i + 1] = " "
            i += 2
            continue
        if ch == '"' or ch == "\n":
            state = None
        elif mask_strings:
            chars[i] = " "
        i += 1

    return "".join(chars)
