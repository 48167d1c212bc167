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
# THE BUILD ORCHESTRATOR - PRODUCTION BUNDLE PIPELINE
# -----------------------------------------------------------------------------
# Responsibility: Turn a project tree into the artifact tree (dist/).
#
# Stages run strictly in order, one after another:
#   1. Clean                  remove and recreate the output directory
#   2. CompileTemplates       pages, then components
#   3. TransformEntryScript   inline template("name") call-sites into app.js
#   4. ProcessAssets          public/, styles.css, assets/
#   5. GenerateRuntimeBundle  registry + runtime modules -> beni.js
#   6. GenerateEntryDocument  index.html
#   7. Cleanup                drop files matching cleanup patterns
#   8. Compress               precomputed .gz siblings
#   9. Report                 artifact statistics
#
# A failing stage aborts the build. Whatever was written before the failure
# stays on disk; the next build starts with Clean anyway.
# -----------------------------------------------------------------------------

import json
import shutil
import sys
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from fnmatch import fnmatch
from html import escape
from pathlib import Path

from rich.console import Console
from rich.panel import Panel

from beni.core.compression import CompressedArtifact, precompress_tree
from beni.core.config import load_config
from beni.core.lexers import is_significant, tokenize_script
from beni.core.optimizer import AssetOptimizer
from beni.core.report import BuildReport, analyze_output, print_report
from beni.core.templates import (
    CompileError,
    ComponentDefinition,
    TemplateCompiler,
    TemplateDocument,
)
from beni.domain.models import BuildConfiguration, ContentKind
from beni.infra.tools import ToolProvider, select_provider

console = Console()

RUNTIME_DIR = Path(__file__).parent.parent / "runtime"

# Concatenation order of the bundle is fixed
RUNTIME_MODULES = ("router.js", "state.js", "renderer.js", "template-engine.js")

ENTRY_SCRIPT = "app.js"
STYLES_BUNDLE = "styles.css"
RUNTIME_BUNDLE = "beni.js"
ENTRY_DOCUMENT = "index.html"


class MissingEntryError(Exception):
    """Raised when a required input (entry script, templates, runtime) is absent."""

    def __init__(self, message: str, path: Path) -> None:
        super().__init__(message)
        self.path = path


class FileSystemError(Exception):
    """Raised when reading or writing a file fails during a build."""

    def __init__(self, message: str, path: Path) -> None:
        super().__init__(f"{message} ({path})")
        self.path = path


@dataclass
class BuildResult:
    """Outcome of a successful build."""

    output_dir: Path
    templates: dict[str, TemplateDocument]
    components: dict[str, ComponentDefinition]
    stages: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    removed: list[Path] = field(default_factory=list)
    compressed: list[CompressedArtifact] = field(default_factory=list)
    report: BuildReport | None = None
    duration: float = 0.0


# =============================================================================
# PURE HELPERS
# =============================================================================


def _literal_value(text: str) -> str | None:
    """Return the value of a simple quoted literal (no escapes, no ${})."""
    if len(text) < 2 or text[0] != text[-1] or text[0] not in "\"'`":
        return None
    body = text[1:-1]
    if "\\" in body or "${" in body:
        return None
    return body


def inline_template_calls(
    code: str, templates: dict[str, TemplateDocument]
) -> tuple[str, list[str]]:
    """
    Replace each template("name") call-site with the JSON string literal of
    the named template's optimized markup.

    Call-sites are found on script tokens, so text inside comments, other
    strings and member calls like obj.template("x") is left alone.

    Returns:
        (new code, names that did not resolve to a template)
    """
    tokens = tokenize_script(code)
    sig = [i for i, tok in enumerate(tokens) if is_significant(tok)]
    replacements: dict[int, tuple[int, str]] = {}
    unknown: list[str] = []

    for k in range(len(sig) - 3):
        tok = tokens[sig[k]]
        if tok.kind != "word" or tok.text != "template":
            continue
        if k and tokens[sig[k - 1]].text == ".":
            continue
        open_paren, literal, close_paren = (tokens[sig[k + n]] for n in (1, 2, 3))
        if open_paren.text != "(" or close_paren.text != ")":
            continue
        if literal.kind not in ("string", "template"):
            continue
        name = _literal_value(literal.text)
        if name is None:
            continue
        document = templates.get(name)
        if document is None:
            unknown.append(name)
            continue
        replacements[sig[k]] = (sig[k + 3], json.dumps(document.optimized))

    if not replacements:
        return code, unknown

    parts: list[str] = []
    i = 0
    while i < len(tokens):
        if i in replacements:
            end, text = replacements[i]
            parts.append(text)
            i = end + 1
            continue
        parts.append(tokens[i].text)
        i += 1
    return "".join(parts), unknown


def render_runtime_bundle(registry: dict, modules: list[str]) -> str:
    """Wrap the registry and runtime module sources in one IIFE."""
    body = "\n\n".join(source.strip() for source in modules)
    return (
        "// Beni.js runtime - production build\n"
        "(function () {\n"
        "'use strict';\n"
        f"var registry = {json.dumps(registry, separators=(',', ':'))};\n\n"
        f"{body}\n\n"
        "var runtime = createRuntime(registry);\n"
        "window.Beni = runtime;\n"
        "window.template = runtime.templateLookup;\n"
        "window.component = runtime.componentLookup;\n"
        "})();\n"
    )


def render_entry_document(
    title: str,
    stylesheets: list[str],
    scripts: list[str],
    extra_body: str = "",
) -> str:
    """Build the HTML entry document."""
    links = "\n".join(
        f'    <link rel="stylesheet" href="{escape(href)}">' for href in stylesheets
    )
    tags = "\n".join(f'    <script src="{escape(src)}"></script>' for src in scripts)
    return (
        "<!DOCTYPE html>\n"
        '<html lang="en">\n'
        "<head>\n"
        '    <meta charset="UTF-8">\n'
        '    <meta name="viewport" content="width=device-width, initial-scale=1.0">\n'
        f"    <title>{escape(title)}</title>\n"
        f"{links}\n"
        "</head>\n"
        "<body>\n"
        '    <div id="app">\n'
        '        <div class="loading">Loading...</div>\n'
        "    </div>\n"
        f"{tags}\n"
        f"{extra_body}"
        "</body>\n"
        "</html>\n"
    )


# =============================================================================
# ORCHESTRATOR
# =============================================================================


class BuildOrchestrator:
    """
    Runs the build stages over one project.

    Usage:
        result = BuildOrchestrator(load_config(Path("."))).build()
    """

    def __init__(
        self,
        config: BuildConfiguration,
        provider: ToolProvider | None = None,
        runtime_dir: Path = RUNTIME_DIR,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            config: The invocation's BuildConfiguration.
            provider: Enhanced tool provider (selected from config if None).
            runtime_dir: Directory holding the runtime modules.
        """
        self.config = config
        self.runtime_dir = runtime_dir
        self.compiler = TemplateCompiler.from_config(config)
        if provider is None and config.minify:
            provider = select_provider(config)
        self.optimizer = AssetOptimizer(config, provider)

        self.templates: dict[str, TemplateDocument] = {}
        self.components: dict[str, ComponentDefinition] = {}
        self.warnings: list[str] = []
        self.removed: list[Path] = []
        self.compressed: list[CompressedArtifact] = []
        self.report: BuildReport | None = None

    @property
    def output_dir(self) -> Path:
        return self.config.output_dir

    def stages(self) -> list[tuple[str, Callable[[], None]]]:
        return [
            ("clean", self.clean),
            ("compile_templates", self.compile_templates),
            ("transform_entry_script", self.transform_entry_script),
            ("process_assets", self.process_assets),
            ("generate_runtime_bundle", self.generate_runtime_bundle),
            ("generate_entry_document", self.generate_entry_document),
            ("cleanup", self.cleanup),
            ("compress", self.compress),
            ("report", self.write_report),
        ]

    def build(self) -> BuildResult:
        """
        Run every stage in order.

        Raises:
            MissingEntryError: A required input is absent.
            FileSystemError: A file operation failed.
            CompileError: A template is malformed.
        """
        started = time.monotonic()
        console.print(f"[cyan][BUILD] Building {self.config.root.name or self.config.root}...[/cyan]")

        completed: list[str] = []
        for name, stage in self.stages():
            try:
                stage()
            except OSError as e:
                path = Path(e.filename) if e.filename else self.output_dir
                raise FileSystemError(e.strerror or str(e), path) from e
            completed.append(name)

        duration = time.monotonic() - started
        if self.report is not None:
            self.report.duration = duration
            if self.config.reporting.show_stats:
                print_report(self.report)
        console.print(f"[green][BUILD] Build completed in {duration:.2f}s -> {self.output_dir}[/green]")

        return BuildResult(
            output_dir=self.output_dir,
            templates=dict(self.templates),
            components=dict(self.components),
            stages=completed,
            warnings=list(self.warnings),
            removed=list(self.removed),
            compressed=list(self.compressed),
            report=self.report,
            duration=duration,
        )

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    def clean(self) -> None:
        """Remove the output directory recursively and recreate it empty."""
        if self.output_dir.exists():
            shutil.rmtree(self.output_dir)
        self.output_dir.mkdir(parents=True)

    def compile_templates(self) -> None:
        """Compile page templates, then components (sorted walk order)."""
        templates_dir = self.config.templates_dir
        if not templates_dir.is_dir():
            raise MissingEntryError(f"Templates directory not found: {templates_dir}", templates_dir)

        for path in sorted(templates_dir.rglob("*.html")):
            relative = path.relative_to(templates_dir)
            if relative.parts[0] == "components":
                continue
            name = relative.with_suffix("").as_posix()
            self.templates[name] = self.compiler.compile(self._read(path), name)

        components_dir = templates_dir / "components"
        if components_dir.is_dir():
            for path in sorted(components_dir.rglob("*.html")):
                name = path.relative_to(components_dir).with_suffix("").as_posix()
                self.components[name] = self.compiler.compile_component(self._read(path), name)

        console.print(
            f"[green][BUILD] Compiled {len(self.templates)} templates "
            f"and {len(self.components)} components[/green]"
        )

    def transform_entry_script(self) -> None:
        """Inline template call-sites into the entry script and write app.js."""
        entry = self.config.source_dir / ENTRY_SCRIPT
        if not entry.is_file():
            raise MissingEntryError(f"{ENTRY_SCRIPT} not found in {self.config.source_dir}", entry)

        code, unknown = inline_template_calls(self._read(entry), self.templates)
        for name in unknown:
            message = f"Template not found: {name}"
            self.warnings.append(message)
            console.print(f"[yellow][BUILD] {message} - call left untouched[/yellow]")

        self._write(ENTRY_SCRIPT, self._minify(ContentKind.SCRIPT, code))

    def process_assets(self) -> None:
        """Copy public/, bundle stylesheets into styles.css, copy assets/."""
        public = self.config.public_dir
        if public.is_dir():
            shutil.copytree(public, self.output_dir, dirs_exist_ok=True)

        styles_dir = self.config.source_dir / "styles"
        files = sorted(styles_dir.rglob("*.css")) if styles_dir.is_dir() else []
        if files:
            sources = [self._read(path) for path in files]
            if self.config.minify:
                workers = min(8, len(sources))
                with ThreadPoolExecutor(max_workers=workers) as pool:
                    sources = list(
                        pool.map(lambda css: self._minify(ContentKind.STYLESHEET, css), sources)
                    )
            self._write(STYLES_BUNDLE, "\n".join(css.strip() for css in sources) + "\n")

        assets = self.config.source_dir / "assets"
        if assets.is_dir():
            shutil.copytree(assets, self.output_dir / "assets", dirs_exist_ok=True)

    def generate_runtime_bundle(self) -> None:
        """Write beni.js: the registry handed to createRuntime()."""
        modules: list[str] = []
        for name in RUNTIME_MODULES:
            path = self.runtime_dir / name
            if not path.is_file():
                raise MissingEntryError(f"Runtime module not found: {name}", path)
            modules.append(self._read(path))

        registry = {
            "templates": {name: doc.to_registry_entry() for name, doc in self.templates.items()},
            "components": {
                name: comp.to_registry_entry() for name, comp in self.components.items()
            },
        }
        bundle = render_runtime_bundle(registry, modules)
        self._write(RUNTIME_BUNDLE, self._minify(ContentKind.SCRIPT, bundle))

    def generate_entry_document(self) -> None:
        """Write index.html referencing the generated artifacts."""
        stylesheets = []
        if (self.output_dir / STYLES_BUNDLE).is_file():
            stylesheets.append(STYLES_BUNDLE)
        stylesheets.extend(self.config.app.css)
        document = render_entry_document(
            self.config.app.title, stylesheets, [RUNTIME_BUNDLE, ENTRY_SCRIPT]
        )
        self._write(ENTRY_DOCUMENT, self._minify(ContentKind.MARKUP, document))

    def cleanup(self) -> None:
        """Delete output files whose name matches a cleanup pattern."""
        patterns = self.config.cleanup.patterns
        for path in sorted(self.output_dir.rglob("*")):
            if path.is_file() and any(fnmatch(path.name, pattern) for pattern in patterns):
                path.unlink()
                self.removed.append(path)
        if self.removed:
            console.print(f"[dim][BUILD] Removed {len(self.removed)} junk file(s)[/dim]")

    def compress(self) -> None:
        """Write .gz siblings where they save enough."""
        if not self.config.compress:
            return
        self.compressed = precompress_tree(self.output_dir, self.config)
        saved = sum(item.saved for item in self.compressed)
        console.print(
            f"[green][BUILD] Precompressed {len(self.compressed)} file(s), saved {saved} bytes[/green]"
        )

    def write_report(self) -> None:
        self.report = analyze_output(
            self.output_dir,
            self.config,
            templates=len(self.templates),
            components=len(self.components),
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _minify(self, kind: ContentKind, content: str) -> str:
        if not self.config.minify:
            return content
        return self.optimizer.optimize(kind, content)

    @staticmethod
    def _read(path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise FileSystemError(f"Cannot decode {path.name} as UTF-8: {e.reason}", path) from e

    def _write(self, relative: str, content: str) -> Path:
        path = self.output_dir / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path


def run_build(root: Path | None = None, config: BuildConfiguration | None = None) -> BuildResult:
    """
    Build the project at root (default: current directory).

    Prints a short diagnostic and exits with status 1 on a fatal build error.
    """
    config = config or load_config(root or Path.cwd())
    try:
        return BuildOrchestrator(config).build()
    except (MissingEntryError, FileSystemError, CompileError) as e:
        console.print(
            Panel(
                f"[bold red]{type(e).__name__}[/bold red]\n\n{e}",
                title="BUILD FAILED",
                border_style="red",
            )
        )
        sys.exit(1)


def main() -> None:
    """Console entry point: build the project in the current directory."""
    run_build()


if __name__ == "__main__":
    main()
