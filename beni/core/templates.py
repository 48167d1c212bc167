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
# TEMPLATE COMPILER
# -----------------------------------------------------------------------------
# Responsibility: Compile the Beni template language into renderers plus
# per-name metadata (referenced variables, component tags, props).
#
# Pipeline (order is load-bearing):
#   1. strip comments          (markup lexer)
#   2. collapse whitespace     (markup lexer)
#   3. parse directives        -> node program
#   4. bind a restricted evaluator to the program
#
# The evaluator only supports property-path lookup, bounded iteration and a
# boolean test. Template text is never turned into executable code.
#
# Limitation: directives of the same kind cannot be nested (an #each inside
# an #each). Such templates are rejected with a CompileError.
# -----------------------------------------------------------------------------

import html
import math
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Union

from beni.core.lexers import collapse_markup_whitespace, strip_markup_comments
from beni.domain.models import BuildConfiguration

# Upper bound on the items a single #each block renders
MAX_EACH_ITEMS = 10_000

_PATH = re.compile(r"^[A-Za-z_$][\w$]*(?:\.[\w$]+)*$")
_MISSING = object()


class CompileError(Exception):
    """Raised when a template contains a malformed directive."""

    def __init__(self, message: str, template: str) -> None:
        super().__init__(f"{template}: {message}")
        self.template = template
        self.reason = message


# =============================================================================
# PROGRAM NODES
# =============================================================================


@dataclass(frozen=True)
class TextNode:
    text: str


@dataclass(frozen=True)
class VarNode:
    path: str


@dataclass(frozen=True)
class EachNode:
    path: str
    body: tuple["Node", ...]


@dataclass(frozen=True)
class IfNode:
    path: str
    negate: bool
    body: tuple["Node", ...]


Node = Union[TextNode, VarNode, EachNode, IfNode]


def program_to_json(program: Sequence[Node]) -> list[list[Any]]:
    """
    Serialize a node program for the client runtime.

    Shape: ["text", s] | ["var", path] | ["each", path, body] |
    ["if", path, negate, body]
    """
    out: list[list[Any]] = []
    for node in program:
        if isinstance(node, TextNode):
            out.append(["text", node.text])
        elif isinstance(node, VarNode):
            out.append(["var", node.path])
        elif isinstance(node, EachNode):
            out.append(["each", node.path, program_to_json(node.body)])
        else:
            out.append(["if", node.path, node.negate, program_to_json(node.body)])
    return out


# =============================================================================
# RESTRICTED EVALUATOR
# =============================================================================


def _get(value: Any, key: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(key, _MISSING)
    if isinstance(value, (list, tuple, str)):
        if key == "length":
            return len(value)
        if key.isdigit() and int(key) < len(value):
            return value[int(key)]
    return _MISSING


def resolve(scopes: Sequence[Mapping[str, Any]], path: str) -> Any:
    """
    Resolve a dotted path against a chain of scopes (innermost first).

    Returns None when any segment is undefined.
    """
    head, *rest = path.split(".")
    value: Any = _MISSING
    for scope in scopes:
        value = _get(scope, head)
        if value is not _MISSING:
            break
    for key in rest:
        if value is _MISSING or value is None:
            return None
        value = _get(value, key)
    return None if value is _MISSING else value


def format_value(value: Any) -> str:
    """Render a resolved value as text (undefined -> empty string)."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join(format_value(v) for v in value)
    if isinstance(value, Mapping):
        return ""
    return str(value)


def is_truthy(value: Any) -> bool:
    """
    The #if test, matching the client runtime.

    Only None, false, 0, NaN and "" are false; empty lists and objects are true.
    """
    if isinstance(value, (Mapping, list, tuple)):
        return True
    if isinstance(value, float) and math.isnan(value):
        return False
    return bool(value)


class Renderer:
    """A compiled template: call it with data to get markup."""

    def __init__(self, program: tuple[Node, ...]) -> None:
        self._program = program

    def __call__(self, data: Mapping[str, Any] | None = None) -> str:
        parts: list[str] = []
        self._render(self._program, [data or {}], parts)
        return "".join(parts)

    def _render(self, nodes: Sequence[Node], scopes: list[Mapping[str, Any]], out: list[str]) -> None:
        for node in nodes:
            if isinstance(node, TextNode):
                out.append(node.text)
            elif isinstance(node, VarNode):
                out.append(html.escape(format_value(resolve(scopes, node.path))))
            elif isinstance(node, IfNode):
                if is_truthy(resolve(scopes, node.path)) != node.negate:
                    self._render(node.body, scopes, out)
            else:
                items = resolve(scopes, node.path)
                if not isinstance(items, (list, tuple)):
                    continue
                for index, item in enumerate(items[:MAX_EACH_ITEMS]):
                    frame: dict[str, Any] = {"this": item, "item": item, "index": index}
                    loop_scopes = [frame]
                    if isinstance(item, Mapping):
                        loop_scopes.append(item)
                    self._render(node.body, loop_scopes + scopes, out)


# =============================================================================
# COMPILED ARTIFACTS
# =============================================================================


@dataclass(frozen=True)
class TemplateDocument:
    """A compiled page template."""

    name: str
    raw_source: str
    optimized: str
    referenced_variables: tuple[str, ...]
    referenced_component_tags: tuple[str, ...]
    program: tuple[Node, ...]
    renderer: Renderer

    def render(self, data: Mapping[str, Any] | None = None) -> str:
        return self.renderer(data)

    def to_registry_entry(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "optimized": self.optimized,
            "variables": list(self.referenced_variables),
            "components": list(self.referenced_component_tags),
            "program": program_to_json(self.program),
        }


@dataclass(frozen=True)
class ComponentDefinition:
    """A compiled component; its renderer receives props."""

    name: str
    raw_source: str
    optimized: str
    declared_props: tuple[str, ...]
    program: tuple[Node, ...]
    renderer: Renderer

    def render(self, props: Mapping[str, Any] | None = None) -> str:
        return self.renderer({"props": props or {}})

    def to_registry_entry(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "optimized": self.optimized,
            "props": list(self.declared_props),
            "program": program_to_json(self.program),
        }


# =============================================================================
# COMPILER
# =============================================================================


class TemplateCompiler:
    """
    Compiles page templates and components.

    Holds only immutable settings, so compiling the same source twice
    always yields equivalent renderers.
    """

    def __init__(
        self,
        delimiters: tuple[str, str] = ("{{", "}}"),
        component_separator: str = "-",
    ) -> None:
        """
        Initialize the compiler.

        Args:
            delimiters: Opening and closing directive delimiters.
            component_separator: Character(s) that mark a tag as a component.
        """
        self._open, self._close = delimiters
        if not self._open or not self._close:
            raise ValueError("Template delimiters must be non-empty")
        sep = re.escape(component_separator)
        self._component_tag = re.compile(rf"<([A-Za-z][\w]*(?:{sep}[\w]+)+)[\s/>]")

    @classmethod
    def from_config(cls, config: BuildConfiguration) -> "TemplateCompiler":
        engine = config.template_engine
        return cls(tuple(engine.delimiters), engine.component_separator)

    def compile(self, source: str, name: str = "<template>") -> TemplateDocument:
        """
        Compile a page template.

        Raises:
            CompileError: On unterminated, stray or nested directives.
        """
        optimized = self.normalize(source)
        program, paths = self._parse(optimized, name)
        components = _unique(m.group(1) for m in self._component_tag.finditer(optimized))
        return TemplateDocument(
            name=name,
            raw_source=source,
            optimized=optimized,
            referenced_variables=paths,
            referenced_component_tags=components,
            program=program,
            renderer=Renderer(program),
        )

    def compile_component(self, source: str, name: str = "<component>") -> ComponentDefinition:
        """Compile a component; declared props are every distinct props.X reference."""
        optimized = self.normalize(source)
        program, paths = self._parse(optimized, name)
        props = _unique(
            path.split(".")[1] for path in paths if path.startswith("props.")
        )
        return ComponentDefinition(
            name=name,
            raw_source=source,
            optimized=optimized,
            declared_props=props,
            program=program,
            renderer=Renderer(program),
        )

    @staticmethod
    def normalize(source: str) -> str:
        """Steps 1 and 2: strip comments, then collapse whitespace."""
        return collapse_markup_whitespace(strip_markup_comments(source)).strip()

    def _parse(self, text: str, name: str) -> tuple[tuple[Node, ...], tuple[str, ...]]:
        # Each frame: (kind, path, negate, children)
        root: list[Node] = []
        stack: list[tuple[str, str, bool, list[Node]]] = []
        paths: list[str] = []

        def current() -> list[Node]:
            return stack[-1][3] if stack else root

        pos = 0
        while True:
            start = text.find(self._open, pos)
            if start == -1:
                if pos < len(text):
                    current().append(TextNode(text[pos:]))
                break
            if start > pos:
                current().append(TextNode(text[pos:start]))
            end = text.find(self._close, start + len(self._open))
            if end == -1:
                raise CompileError(
                    f"unterminated directive starting at offset {start}", name
                )
            expr = text[start + len(self._open):end].strip()
            pos = end + len(self._close)

            if expr.startswith("#"):
                kind, _, subject = expr[1:].partition(" ")
                if kind not in ("each", "if"):
                    raise CompileError(f"unknown directive '#{kind}'", name)
                if any(frame[0] == kind for frame in stack):
                    raise CompileError(f"nested #{kind} blocks are not supported", name)
                subject = subject.strip()
                negate = kind == "if" and subject.startswith("!")
                if negate:
                    subject = subject[1:].strip()
                self._check_path(subject, name)
                paths.append(subject)
                stack.append((kind, subject, negate, []))
            elif expr.startswith("/"):
                kind = expr[1:].strip()
                if not stack or stack[-1][0] != kind:
                    raise CompileError(f"unexpected closing '/{kind}'", name)
                frame_kind, subject, negate, children = stack.pop()
                if frame_kind == "each":
                    current().append(EachNode(subject, tuple(children)))
                else:
                    current().append(IfNode(subject, negate, tuple(children)))
            else:
                self._check_path(expr, name)
                paths.append(expr)
                current().append(VarNode(expr))

        if stack:
            raise CompileError(f"unterminated #{stack[-1][0]} block", name)
        return tuple(root), _unique(paths)

    @staticmethod
    def _check_path(path: str, name: str) -> None:
        if not path:
            raise CompileError("empty expression", name)
        if not _PATH.match(path):
            raise CompileError(f"unsupported expression '{path}'", name)


def _unique(items) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for item in items:
        seen.setdefault(item, None)
    return tuple(seen)
