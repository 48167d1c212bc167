# Copyright 2026 Pramod Kumar Voola
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

# -----------------------------------------------------------------------------
# LEXERS - LITERAL-AWARE TOKENIZERS
# -----------------------------------------------------------------------------
# Responsibility: Split markup, script and stylesheet text into tokens that
# know where literals begin and end, so comment stripping and whitespace
# collapsing never reach inside a string, a template literal, a regex or a
# quoted attribute.
#
# These are minimal lexers, not parsers. Known limitations:
# - Script: a backtick literal nested inside a ${...} expression ends the
#   outer template literal early.
# - Script: regex literals are detected from the previous significant token,
#   which misreads a few exotic constructs (e.g. `a++ /re/`).
# -----------------------------------------------------------------------------

import re
from typing import NamedTuple


class Token(NamedTuple):
    """A lexical token: its kind and the exact source text it covers."""

    kind: str
    text: str


# =============================================================================
# MARKUP
# =============================================================================

# Elements whose content is never collapsed or comment-stripped
RAW_TEXT_ELEMENTS = frozenset({"script", "style", "pre", "textarea"})

_TAG_NAME = re.compile(r"</?\s*([A-Za-z][\w:-]*)")
_WHITESPACE = re.compile(r"\s+")


def _scan_tag(text: str, start: int) -> int:
    """Return the index just past the '>' closing the tag at start."""
    quote: str | None = None
    i = start + 1
    while i < len(text):
        char = text[i]
        if quote:
            if char == quote:
                quote = None
        elif char in "\"'":
            quote = char
        elif char == ">":
            return i + 1
        i += 1
    return len(text)


def tokenize_markup(text: str) -> list[Token]:
    """
    Tokenize markup into comment, tag, text and raw tokens.

    raw tokens hold the untouched body of script/style/pre/textarea elements.
    """
    tokens: list[Token] = []
    i = 0
    n = len(text)
    while i < n:
        if text.startswith("<!--", i):
            end = text.find("-->", i + 4)
            end = n if end == -1 else end + 3
            tokens.append(Token("comment", text[i:end]))
            i = end
            continue

        if text[i] == "<" and i + 1 < n and (text[i + 1].isalpha() or text[i + 1] in "/!?"):
            end = _scan_tag(text, i)
            tag = text[i:end]
            tokens.append(Token("tag", tag))
            i = end
            match = _TAG_NAME.match(tag)
            if match and not tag.startswith("</") and not tag.endswith("/>"):
                name = match.group(1).lower()
                if name in RAW_TEXT_ELEMENTS:
                    close = text.lower().find(f"</{name}", i)
                    close = n if close == -1 else close
                    if close > i:
                        tokens.append(Token("raw", text[i:close]))
                    i = close
            continue

        j = text.find("<", i + 1)
        j = n if j == -1 else j
        tokens.append(Token("text", text[i:j]))
        i = j
    return tokens


def _is_conditional_comment(comment: str) -> bool:
    return comment.startswith("<!--[if") or comment.startswith("<![endif]")


def strip_markup_comments(text: str) -> str:
    """Remove HTML comments (conditional comments are kept)."""
    return "".join(
        tok.text
        for tok in tokenize_markup(text)
        if tok.kind != "comment" or _is_conditional_comment(tok.text)
    )


def collapse_tag(tag: str) -> str:
    """Collapse whitespace inside a tag, leaving quoted attribute values alone."""
    out: list[str] = []
    quote: str | None = None
    pending_space = False
    for char in tag:
        if quote:
            out.append(char)
            if char == quote:
                quote = None
            continue
        if char.isspace():
            pending_space = True
            continue
        if pending_space:
            # No space around '=' or before the closing bracket
            if out and out[-1] != "=" and char not in "=>" and not (char == "/" and tag.endswith("/>")):
                out.append(" ")
            pending_space = False
        if char in "\"'":
            quote = char
        out.append(char)
    return "".join(out)


def collapse_markup_whitespace(text: str) -> str:
    """Collapse whitespace runs to one space outside raw-text elements."""
    parts: list[str] = []
    for tok in tokenize_markup(text):
        if tok.kind == "text":
            parts.append(_WHITESPACE.sub(" ", tok.text))
        elif tok.kind == "tag":
            parts.append(collapse_tag(tok.text))
        else:
            parts.append(tok.text)
    return "".join(parts)


# =============================================================================
# SCRIPT
# =============================================================================

_IDENT_CHARS = re.compile(r"[\w$]+")
_REGEX_PRECEDERS = frozenset("(,=:[!&|?{};+-*%<>~^")
_REGEX_KEYWORDS = frozenset(
    {
        "return", "typeof", "case", "do", "else", "in", "instanceof",
        "new", "delete", "void", "throw", "yield", "await",
    }
)


def _scan_quoted(text: str, start: int) -> int:
    quote = text[start]
    i = start + 1
    while i < len(text):
        char = text[i]
        if char == "\\":
            i += 2
            continue
        if char == quote or char == "\n":
            return i + 1
        i += 1
    return len(text)


def _scan_template_literal(text: str, start: int) -> int:
    depth = 0
    i = start + 1
    while i < len(text):
        char = text[i]
        if char == "\\":
            i += 2
            continue
        if depth == 0 and char == "`":
            return i + 1
        if text.startswith("${", i):
            depth += 1
            i += 2
            continue
        if depth and char == "{":
            depth += 1
        elif depth and char == "}":
            depth -= 1
        i += 1
    return len(text)


def _scan_regex(text: str, start: int) -> int:
    in_class = False
    i = start + 1
    while i < len(text):
        char = text[i]
        if char == "\\":
            i += 2
            continue
        if char == "\n":
            return i
        if in_class:
            if char == "]":
                in_class = False
        elif char == "[":
            in_class = True
        elif char == "/":
            i += 1
            while i < len(text) and (text[i].isalnum() or text[i] == "_"):
                i += 1
            return i
        i += 1
    return len(text)


def _regex_allowed(previous: Token | None) -> bool:
    if previous is None:
        return True
    if previous.kind == "punct":
        return previous.text in _REGEX_PRECEDERS
    if previous.kind == "word":
        return previous.text in _REGEX_KEYWORDS
    return False


def tokenize_script(text: str) -> list[Token]:
    """
    Tokenize JavaScript into ws, comment, string, template, regex, word and
    punct tokens. Punctuation is emitted one character per token.
    """
    tokens: list[Token] = []
    previous: Token | None = None
    i = 0
    n = len(text)
    while i < n:
        char = text[i]
        if char.isspace():
            j = i + 1
            while j < n and text[j].isspace():
                j += 1
            tokens.append(Token("ws", text[i:j]))
            i = j
            continue
        if text.startswith("//", i):
            j = text.find("\n", i)
            j = n if j == -1 else j
            tokens.append(Token("comment", text[i:j]))
            i = j
            continue
        if text.startswith("/*", i):
            j = text.find("*/", i + 2)
            j = n if j == -1 else j + 2
            tokens.append(Token("comment", text[i:j]))
            i = j
            continue

        if char in "\"'":
            j = _scan_quoted(text, i)
            tok = Token("string", text[i:j])
        elif char == "`":
            j = _scan_template_literal(text, i)
            tok = Token("template", text[i:j])
        elif char == "/" and _regex_allowed(previous):
            j = _scan_regex(text, i)
            tok = Token("regex", text[i:j])
        else:
            match = _IDENT_CHARS.match(text, i)
            if match:
                j = match.end()
                tok = Token("word", text[i:j])
            else:
                j = i + 1
                tok = Token("punct", char)
        tokens.append(tok)
        previous = tok
        i = j
    return tokens


def is_significant(token: Token) -> bool:
    """True for tokens that carry program meaning (not whitespace/comments)."""
    return token.kind not in ("ws", "comment")


# =============================================================================
# STYLESHEET
# =============================================================================


def tokenize_stylesheet(text: str) -> list[Token]:
    """Tokenize CSS into comment, string, ws and other tokens."""
    tokens: list[Token] = []
    i = 0
    n = len(text)
    while i < n:
        char = text[i]
        if text.startswith("/*", i):
            j = text.find("*/", i + 2)
            j = n if j == -1 else j + 2
            tokens.append(Token("comment", text[i:j]))
        elif char in "\"'":
            j = _scan_quoted(text, i)
            tokens.append(Token("string", text[i:j]))
        elif char.isspace():
            j = i + 1
            while j < n and text[j].isspace():
                j += 1
            tokens.append(Token("ws", text[i:j]))
        else:
            j = i + 1
            while j < n and not text[j].isspace() and text[j] not in "\"'" and not text.startswith("/*", j):
                j += 1
            tokens.append(Token("other", text[i:j]))
        i = j
    return tokens
