"""
Translation of delimited PCRE rules into Python regular expressions.

Remote rules are authored for preg_replace: the search is wrapped in
delimiters with trailing modifiers (`/Deprecated: (.*) called/i`) and the
replacement refers to groups as `$1`, `${1}` or `\\1`.

Patterns are compiled with the `regex` package, which understands the
PCRE syntax the stdlib `re` lacks (`(?<name>...)`, `\\p{Lu}`, atomic
groups, possessive quantifiers, `\\G`).
"""

from dataclasses import dataclass
from typing import Callable, Iterator, List, Tuple, Union

import regex

from .exceptions import InvalidPatternError

DIGITS = "0123456789"
BRACKET_DELIMITERS = {"(": ")", "[": "]", "{": "}", "<": ">"}

MODIFIER_FLAGS = {
    "i": regex.IGNORECASE,
    "m": regex.MULTILINE,
    "s": regex.DOTALL,
    "x": regex.VERBOSE,
    "u": 0,  # str patterns are unicode already
    "S": 0,  # no-ops since PHP 7.3
    "X": 0,
}

# Modifiers without a flag equivalent, applied by rewriting the pattern
UNGREEDY = "U"
ANCHORED = "A"
DOLLAR_ENDONLY = "D"
REWRITE_MODIFIERS = {UNGREEDY, ANCHORED, DOLLAR_ENDONLY}

COUNTED_QUANTIFIER = regex.compile(r"\{\d+(?:,\d*)?\}")


def _find_closing_delimiter(search: str, opening: str) -> int:
    """Index of the closing delimiter, skipping escaped characters and nested brackets."""
    closing = BRACKET_DELIMITERS.get(opening, opening)
    depth = 1
    i = 1
    while i < len(search):
        char = search[i]
        if char == "\\":
            i += 2
            continue
        if char == closing and closing != opening:
            depth -= 1
            if depth == 0:
                return i
        elif char == closing:
            return i
        elif char == opening and closing != opening:
            depth += 1
        i += 1
    return -1


def _class_end(body: str, start: int) -> int:
    """Index just past the character class opening at `start`."""
    i = start + 1
    if body[i:i + 1] == "^":
        i += 1
    if body[i:i + 1] == "]":
        i += 1
    while i < len(body) and body[i] != "]":
        if body[i] == "\\":
            i += 2
        elif body.startswith("[:", i) and ":]" in body[i:]:
            i = body.index(":]", i) + 2
        else:
            i += 1
    return i + 1


def _tokenize(body: str) -> Iterator[Tuple[str, str]]:
    """
    Split a pattern body into (kind, text) tokens.

    Only the kinds the rewrites care about are told apart: `quantifier`
    (including lazy and possessive suffixes, which follow as their own
    token) and `dollar`. Escapes and character classes are single
    `literal` tokens so nothing inside them is rewritten.
    """
    i = 0
    while i < len(body):
        char = body[i]
        if char == "\\":
            yield "literal", body[i:i + 2]
            i += 2
        elif char == "[":
            end = _class_end(body, i)
            yield "literal", body[i:end]
            i = end
        elif char == "(":
            # `(?` and `(*` open group syntax, not quantifiers
            if body[i + 1:i + 2] in ("?", "*"):
                yield "literal", body[i:i + 2]
                i += 2
            else:
                yield "literal", char
                i += 1
        elif char in "*+?":
            yield "quantifier", char
            i += 1
        elif char == "{" and COUNTED_QUANTIFIER.match(body, i):
            counted = COUNTED_QUANTIFIER.match(body, i).group()
            yield "quantifier", counted
            i += len(counted)
        elif char == "$":
            yield "dollar", char
            i += 1
        else:
            yield "literal", char
            i += 1


def _make_ungreedy(body: str) -> str:
    """Invert greediness: `a+` becomes lazy, `a+?` becomes greedy, `a++` stays possessive."""
    tokens = list(_tokenize(body))
    parts = []
    i = 0
    while i < len(tokens):
        kind, text = tokens[i]
        parts.append(text)
        i += 1
        if kind != "quantifier":
            continue
        following = tokens[i][1] if i < len(tokens) else ""
        if following == "?":
            i += 1
        elif following == "+":
            parts.append(following)
            i += 1
        else:
            parts.append("?")
    return "".join(parts)


def _anchor_dollar_at_end(body: str) -> str:
    """`$` matches only at the very end of the subject, not before a final newline."""
    return "".join("\\Z" if kind == "dollar" else text for kind, text in _tokenize(body))


def compile_pattern(search: str) -> regex.Pattern:
    """Compile a delimited PCRE pattern such as `/foo (.*)/i`."""
    stripped = search.lstrip()
    if not stripped:
        raise InvalidPatternError("Empty regular expression", pattern=search)

    delimiter = stripped[0]
    if delimiter.isalnum() or delimiter == "\\" or delimiter.isspace():
        raise InvalidPatternError("Delimiter must not be alphanumeric, backslash or whitespace", pattern=search)

    end = _find_closing_delimiter(stripped, delimiter)
    if end < 0:
        raise InvalidPatternError(f"No ending delimiter '{BRACKET_DELIMITERS.get(delimiter, delimiter)}' found", pattern=search)

    body = stripped[1:end]
    flags = 0
    rewrites = set()
    for modifier in stripped[end + 1:]:
        if modifier.isspace():
            continue
        if modifier in MODIFIER_FLAGS:
            flags |= MODIFIER_FLAGS[modifier]
        elif modifier in REWRITE_MODIFIERS:
            rewrites.add(modifier)
        else:
            raise InvalidPatternError(f"Unknown modifier '{modifier}'", pattern=search)

    if UNGREEDY in rewrites:
        body = _make_ungreedy(body)
    # PCRE ignores D when m is set
    if DOLLAR_ENDONLY in rewrites and not flags & regex.MULTILINE:
        body = _anchor_dollar_at_end(body)
    if ANCHORED in rewrites:
        # A trailing comment in verbose mode would swallow the closing parenthesis
        body = "\\G(?:" + body + ("\n)" if flags & regex.VERBOSE else ")")

    try:
        return regex.compile(body, flags)
    except regex.error as e:
        raise InvalidPatternError(f"Invalid regular expression: {e}", pattern=search) from e


def _read_group_number(template: str, start: int) -> Tuple[int, int]:
    """Read one or two digits at `start`; returns (group, next index)."""
    end = start + 1
    if end < len(template) and template[end] in DIGITS:
        end += 1
    return int(template[start:end]), end


def _parse_replacement(template: str) -> List[Union[str, int]]:
    parts: List[Union[str, int]] = []
    literal: List[str] = []

    def flush() -> None:
        if literal:
            parts.append("".join(literal))
            literal.clear()

    i = 0
    while i < len(template):
        char = template[i]
        following = template[i + 1] if i + 1 < len(template) else "\0"

        if char == "\\" and following in DIGITS:
            flush()
            group, i = _read_group_number(template, i + 1)
            parts.append(group)
            continue
        if char == "\\" and following == "\\":
            literal.append("\\")
            i += 2
            continue
        if char == "$" and following in DIGITS:
            flush()
            group, i = _read_group_number(template, i + 1)
            parts.append(group)
            continue
        if char == "$" and following == "{":
            braced = regex.match(r"\$\{(\d{1,2})\}", template[i:])
            if braced:
                flush()
                parts.append(int(braced.group(1)))
                i += braced.end()
                continue

        literal.append(char)
        i += 1

    flush()
    return parts


def expand_replacement(template: str) -> Callable[[regex.Match], str]:
    """
    Build a regex sub callback for a preg_replace style template.

    Groups that did not participate in the match, or do not exist in the
    pattern, expand to an empty string.
    """
    parts = _parse_replacement(template)

    def expand(match: regex.Match) -> str:
        pieces = []
        for part in parts:
            if isinstance(part, int):
                if part <= match.re.groups:
                    pieces.append(match.group(part) or "")
            else:
                pieces.append(part)
        return "".join(pieces)

    return expand


@dataclass(frozen=True)
class CompiledRule:
    """A convert rule ready to be applied."""
    search: str
    replace: str
    pattern: regex.Pattern
    expand: Callable[[regex.Match], str]

    @classmethod
    def compile(cls, search: str, replace: str) -> "CompiledRule":
        return cls(
            search=search,
            replace=replace,
            pattern=compile_pattern(search),
            expand=expand_replacement(replace),
        )

    def apply(self, message: str) -> str:
        return self.pattern.sub(self.expand, message)
