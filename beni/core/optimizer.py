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
# THE OPTIMIZER - MARKUP / SCRIPT / STYLESHEET TRANSFORMS
# -----------------------------------------------------------------------------
# Responsibility: Shrink assets. Each content kind has two tiers:
# - Baseline: lexer-based text rules (always available, pure Python)
# - Enhanced: the external tool of the selected ToolProvider
#
# optimize() never raises. A missing or failing tool degrades to the
# baseline result with an advisory, so the build always completes.
#
# The baseline is not guaranteed to be behaviorally identical to the
# enhanced tools (e.g. whitespace between two inline tags is dropped).
# -----------------------------------------------------------------------------

import re
from collections.abc import Sequence

from rich.console import Console

from beni.core.lexers import (
    Token,
    collapse_tag,
    is_significant,
    tokenize_markup,
    tokenize_script,
    tokenize_stylesheet,
)
from beni.domain.models import BuildConfiguration, ContentKind, MarkupMinification
from beni.infra.tools import BaselineProvider, ToolProvider

console = Console()

_WHITESPACE = re.compile(r"\s+")
_TAG_NAME = re.compile(r"</?\s*([A-Za-z][\w:-]*)")
_TYPE_ATTR = re.compile(r"""\stype=["']?([^"'\s>]+)["']?""", re.IGNORECASE)
_REDUNDANT_TYPE = re.compile(
    r"""\s+type=["']?text/(?:javascript|css)["']?(?=[\s/>])""", re.IGNORECASE
)
_JS_TYPES = frozenset({"text/javascript", "application/javascript", "module"})

# Tokens after which a newline can never be an implicit statement end
_OPERATOR_TAIL = set("=+-*/%&|^!~?:,(<>[.")


# =============================================================================
# SCRIPT BASELINE
# =============================================================================


def _wordish(char: str) -> bool:
    return char.isalnum() or char in "_$" or ord(char) > 127


def _script_separator(prev: str, nxt: str, pending: str) -> str:
    a, b = prev[-1], nxt[0]
    if pending == "\n":
        if a in "{[(,;:" or b in "}]),;.":
            return ""
        return "\n"
    if _wordish(a) and _wordish(b):
        return " "
    if a == b and a in "+-/":
        return " "
    if a.isdigit() and b == ".":
        return " "
    return ""


def _match_callee(
    tokens: Sequence[Token], sig: Sequence[int], k: int, callees: Sequence[tuple[str, ...]]
) -> int | None:
    """Return the sig index of '(' when a dotted callee starts at sig[k]."""
    for parts in callees:
        pos = k
        matched = True
        for n, part in enumerate(parts):
            if n:
                if pos >= len(sig) or tokens[sig[pos]].text != ".":
                    matched = False
                    break
                pos += 1
            if pos >= len(sig) or tokens[sig[pos]].text != part:
                matched = False
                break
            pos += 1
        if matched and pos < len(sig) and tokens[sig[pos]].text == "(":
            return pos
    return None


def _matching_paren(tokens: Sequence[Token], sig: Sequence[int], open_k: int) -> int | None:
    depth = 0
    for k in range(open_k, len(sig)):
        tok = tokens[sig[k]]
        if tok.kind != "punct":
            continue
        if tok.text == "(":
            depth += 1
        elif tok.text == ")":
            depth -= 1
            if depth == 0:
                return k
    return None


def _statement_position(tokens: Sequence[Token], sig: Sequence[int], k: int) -> str:
    """Classify a call-site as 'start', 'line' (after a newline) or 'expr'."""
    if k == 0:
        return "start"
    prev = tokens[sig[k - 1]]
    if prev.text in (";", "{", "}"):
        return "start"
    between = tokens[sig[k - 1] + 1:sig[k]]
    newline = any("\n" in tok.text for tok in between)
    if newline and prev.text[-1] not in _OPERATOR_TAIL:
        return "line"
    return "expr"


def drop_diagnostics(
    tokens: list[Token], pure_funcs: Sequence[str], drop_debugger: bool
) -> list[Token]:
    """
    Remove calls to allowlisted diagnostic functions and debugger statements.

    A call in statement position disappears (or becomes an empty statement);
    a call inside an expression is replaced with 'void 0'.
    """
    callees = [tuple(name.split(".")) for name in pure_funcs if name]
    sig = [i for i, tok in enumerate(tokens) if is_significant(tok)]
    replacements: dict[int, tuple[int, str]] = {}

    k = 0
    while k < len(sig):
        tok = tokens[sig[k]]
        prev = tokens[sig[k - 1]] if k else None
        if tok.kind != "word" or (prev is not None and prev.text == "."):
            k += 1
            continue

        if drop_debugger and tok.text == "debugger":
            end_k = k + 1 if k + 1 < len(sig) and tokens[sig[k + 1]].text == ";" else k
            replacements[sig[k]] = (sig[end_k], "")
            k = end_k + 1
            continue

        open_k = _match_callee(tokens, sig, k, callees)
        close_k = _matching_paren(tokens, sig, open_k) if open_k is not None else None
        if close_k is None:
            k += 1
            continue

        has_semi = close_k + 1 < len(sig) and tokens[sig[close_k + 1]].text == ";"
        position = _statement_position(tokens, sig, k)
        if position == "start":
            replacement = ""
        elif position == "line":
            replacement = ";"
        else:
            replacement = "void 0"
        end_k = close_k + 1 if has_semi and position != "expr" else close_k
        replacements[sig[k]] = (sig[end_k], replacement)
        k = end_k + 1

    if not replacements:
        return tokens

    result: list[Token] = []
    i = 0
    while i < len(tokens):
        if i in replacements:
            end, replacement = replacements[i]
            if replacement:
                result.append(Token("punct" if replacement == ";" else "word", replacement))
            i = end + 1
            continue
        result.append(tokens[i])
        i += 1
    return result


def minify_script(text: str, pure_funcs: Sequence[str] = (), drop_debugger: bool = False) -> str:
    """Baseline script transform: strip comments, collapse whitespace."""
    tokens = tokenize_script(text)
    if pure_funcs or drop_debugger:
        tokens = drop_diagnostics(tokens, pure_funcs, drop_debugger)

    out: list[str] = []
    pending: str | None = None
    for tok in tokens:
        if tok.kind == "ws":
            pending = "\n" if "\n" in tok.text or pending == "\n" else " "
            continue
        if tok.kind == "comment":
            if tok.text.startswith("/*") and "\n" in tok.text:
                pending = "\n"
            else:
                pending = pending or " "
            continue
        if out and pending:
            separator = _script_separator(out[-1], tok.text, pending)
            if separator:
                out.append(separator)
        pending = None
        out.append(tok.text)
    return "".join(out).strip()


# =============================================================================
# STYLESHEET BASELINE
# =============================================================================


def _css_space_needed(prev: str, nxt: str) -> bool:
    a, b = prev[-1], nxt[0]
    return not (a in "{};,>~:" or b in "{};,>~!")


def minify_stylesheet(text: str, discard_comments: bool = True) -> str:
    """Baseline stylesheet transform: strip comments, collapse whitespace."""
    out: list[str] = []
    pending = False
    for tok in tokenize_stylesheet(text):
        if tok.kind == "comment" and discard_comments:
            pending = True
            continue
        if tok.kind == "ws":
            pending = True
            continue
        piece = tok.text
        if tok.kind == "other":
            piece = re.sub(r";+}", "}", piece)
            if piece.startswith("}") and out and out[-1].endswith(";"):
                out[-1] = out[-1][:-1]
                if not out[-1]:
                    out.pop()
        if out and pending and _css_space_needed(out[-1], piece):
            out.append(" ")
        pending = False
        out.append(piece)
    return "".join(out).strip()


# =============================================================================
# MARKUP BASELINE
# =============================================================================


def _is_script_body(tag: str) -> bool:
    if re.search(r"\ssrc=", tag, re.IGNORECASE):
        return False
    match = _TYPE_ATTR.search(tag)
    return match is None or match.group(1).lower() in _JS_TYPES


def minify_markup(
    text: str,
    settings: MarkupMinification | None = None,
    pure_funcs: Sequence[str] = (),
    drop_debugger: bool = False,
) -> str:
    """Baseline markup transform driven by the markup minification block."""
    settings = settings or MarkupMinification()
    out: list[str] = []
    last_tag = ""
    for tok in tokenize_markup(text):
        if tok.kind == "comment":
            conditional = tok.text.startswith("<!--[if")
            if settings.remove_comments and not conditional:
                continue
            out.append(tok.text)
        elif tok.kind == "tag":
            tag = collapse_tag(tok.text) if settings.collapse_whitespace else tok.text
            if settings.use_short_doctype and tag[:9].lower() == "<!doctype":
                tag = "<!DOCTYPE html>"
            if settings.remove_redundant_attributes:
                tag = _REDUNDANT_TYPE.sub("", tag)
            last_tag = tag
            out.append(tag)
        elif tok.kind == "raw":
            match = _TAG_NAME.match(last_tag)
            name = match.group(1).lower() if match else ""
            body = tok.text
            if name == "style" and settings.minify_css:
                body = minify_stylesheet(body)
            elif name == "script" and settings.minify_js and _is_script_body(last_tag):
                body = minify_script(body, pure_funcs, drop_debugger)
            out.append(body)
        elif settings.collapse_whitespace:
            collapsed = _WHITESPACE.sub(" ", tok.text)
            # Whitespace-only runs between two tags are dropped
            if collapsed.strip():
                out.append(collapsed)
        else:
            out.append(tok.text)
    result = "".join(out)
    return result.strip() if settings.collapse_whitespace else result


# =============================================================================
# ASSET OPTIMIZER
# =============================================================================


class AssetOptimizer:
    """
    Per-content-type optimizer with graceful degradation.

    The ToolProvider is chosen once by the caller (see select_provider);
    the optimizer itself never probes the environment.
    """

    def __init__(self, config: BuildConfiguration, provider: ToolProvider | None = None) -> None:
        """
        Initialize the optimizer.

        Args:
            config: The invocation's BuildConfiguration.
            provider: Enhanced capability provider (baseline-only if None).
        """
        self._config = config
        self._provider = provider or BaselineProvider()

    @property
    def provider(self) -> ToolProvider:
        return self._provider

    def optimize(self, kind: ContentKind | str, content: str) -> str:
        """
        Transform content of the given kind. Never raises.

        Returns:
            The enhanced result when the provider handles the kind and
            succeeds; the baseline result otherwise; the input unchanged when
            the kind is disabled in configuration.
        """
        kind = ContentKind(kind)
        if not self._settings(kind).enabled:
            return content

        if self._provider.supports(kind):
            try:
                return self._provider.run(kind, content)
            except Exception as e:
                console.print(
                    f"[yellow][OPTIMIZER] {e} - using baseline {kind.value} transform[/yellow]"
                )
        return self.baseline(kind, content)

    def baseline(self, kind: ContentKind, content: str) -> str:
        """Apply the pure-Python transform; returns content unchanged on error."""
        script = self._config.minification.script
        drop = self._config.drop_diagnostics
        pure_funcs = script.pure_funcs if drop else ()
        drop_debugger = drop and script.drop_debugger
        try:
            if kind is ContentKind.SCRIPT:
                return minify_script(content, pure_funcs, drop_debugger)
            if kind is ContentKind.STYLESHEET:
                return minify_stylesheet(
                    content, self._config.minification.stylesheet.discard_comments
                )
            return minify_markup(
                content, self._config.minification.markup, pure_funcs, drop_debugger
            )
        except Exception as e:
            console.print(
                f"[red][OPTIMIZER] Baseline {kind.value} transform failed: {e} - "
                f"keeping original content[/red]"
            )
            return content

    def _settings(self, kind: ContentKind):
        blocks = self._config.minification
        return {
            ContentKind.MARKUP: blocks.markup,
            ContentKind.SCRIPT: blocks.script,
            ContentKind.STYLESHEET: blocks.stylesheet,
        }[kind]


def optimize(
    kind: ContentKind | str,
    content: str,
    config: BuildConfiguration,
    provider: ToolProvider | None = None,
) -> str:
    """One-shot helper: optimize content with a fresh AssetOptimizer."""
    return AssetOptimizer(config, provider).optimize(kind, content)
