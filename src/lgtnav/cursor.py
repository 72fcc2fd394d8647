"""Symbol-under-cursor extraction for the prepare steps.

Plain text scans only: the predicate indicator or entity name found here is
what gets sent to the engine, which does the actual resolution.
"""

from __future__ import annotations

import re

_CALL_WORD = re.compile(r"(?:\w+(?:\([^()]*\))?::|::|\^\^)?\w+|@\w+")
_ENTITY_WORD = re.compile(r"\w+")
_INDICATOR_SUFFIX = re.compile(r"//?(\d+)")
_WHITESPACE = re.compile(r"\s+")
_LINE_BREAK = re.compile(r"\r?\n")
_OPEN = "([{"
_CLOSE = ")]}"


def _word_at(text: str, character: int, pattern: re.Pattern[str]) -> re.Match[str] | None:
    for match in pattern.finditer(text):
        if match.start() <= character <= match.end():
            return match
    return None


def _text_from(lines: list[str], line: int, column: int) -> str:
    return _WHITESPACE.sub(" ", "".join(lines[line:])[column:])


def _is_variable(name: str) -> bool:
    return not name or name[0] == "_" or name[0].isupper() or name[0].isdigit()


def _closing_index(text: str, open_index: int) -> tuple[int, int]:
    """Scan a parenthesized argument list.

    Returns the index just past the closing parenthesis (or the end of the
    text when unbalanced) and the number of top-level arguments.
    """
    depth = 0
    commas = 0
    saw_argument = False
    quote: str | None = None
    index = open_index
    while index < len(text):
        char = text[index]
        if quote is not None:
            if char == "\\":
                index += 2
                continue
            if char == quote:
                if index + 1 < len(text) and text[index + 1] == quote:
                    index += 2
                    continue
                quote = None
            index += 1
            continue
        if char in "'\"`":
            quote = char
            saw_argument = True
        elif char in _OPEN:
            depth += 1
        elif char in _CLOSE:
            depth -= 1
            if depth == 0:
                arity = commas + 1 if saw_argument else 0
                return index + 1, arity
        elif char == "," and depth == 1:
            commas += 1
        elif not char.isspace() and depth >= 1:
            saw_argument = True
        index += 1
    return len(text), (commas + 1 if saw_argument else 0)


def call_under_cursor(text: str, line: int, character: int) -> str | None:
    """Return the predicate indicator (``name/arity``) of the call at the cursor."""
    lines = _LINE_BREAK.split(text)
    if not 0 <= line < len(lines):
        return None
    match = _word_at(lines[line], character, _CALL_WORD)
    if match is None:
        return None
    name = match.group(0)
    if _is_variable(name):
        return None
    rest = _text_from(lines, line, match.start())
    after = rest[len(name):]
    arity = 0
    if after.startswith("("):
        _, arity = _closing_index(after, 0)
    else:
        indicator = _INDICATOR_SUFFIX.match(after)
        if indicator:
            arity = int(indicator.group(1))
    return f"{name}/{arity}"


def entity_under_cursor(text: str, line: int, character: int) -> str | None:
    """Return the entity name at the cursor, with parameters when parametric."""
    lines = _LINE_BREAK.split(text)
    if not 0 <= line < len(lines):
        return None
    match = _word_at(lines[line], character, _ENTITY_WORD)
    if match is None:
        return None
    name = match.group(0)
    if _is_variable(name):
        return None
    rest = _text_from(lines, line, match.start())
    if rest[len(name):].startswith("("):
        end, _ = _closing_index(rest, len(name))
        return rest[:end]
    return name
