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
# DOMAIN MODELS - BUILD CONFIGURATION & WIRE MESSAGES
# -----------------------------------------------------------------------------
# These Pydantic models define the configuration surface of a Beni project
# (beni.config.yaml) and the small messages that cross process boundaries.
#
# Every configuration model is frozen: a BuildConfiguration is loaded once per
# invocation and stays immutable for one build or one server lifetime.
# -----------------------------------------------------------------------------

import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class ContentKind(str, Enum):
    """The three content types the optimizer knows how to transform."""

    MARKUP = "markup"
    SCRIPT = "script"
    STYLESHEET = "stylesheet"


class WatchEventKind(str, Enum):
    """Filesystem change categories reported by the SourceWatcher."""

    ADDED = "added"
    CHANGED = "changed"
    REMOVED = "removed"


class _Frozen(BaseModel):
    """Base for configuration blocks: immutable, unknown keys ignored."""

    model_config = ConfigDict(frozen=True, extra="ignore")


class DirectoriesConfig(_Frozen):
    """Project layout, relative to the project root."""

    source: str = "src"
    templates: str = "src/templates"
    public: str = "public"
    output: str = "dist"


class MarkupMinification(_Frozen):
    """Settings for the markup transform (html-minifier-terser compatible)."""

    enabled: bool = True
    remove_comments: bool = True
    collapse_whitespace: bool = True
    remove_redundant_attributes: bool = True
    use_short_doctype: bool = True
    minify_css: bool = True
    minify_js: bool = True


class ScriptMinification(_Frozen):
    """Settings for the script transform (terser compatible)."""

    enabled: bool = True
    mangle: bool = True
    drop_debugger: bool = True
    pure_funcs: list[str] = Field(
        default_factory=lambda: ["console.log", "console.info", "console.debug"]
    )
    passes: int = Field(default=2, ge=1, le=10)
    comments: bool = False


class StylesheetMinification(_Frozen):
    """Settings for the stylesheet transform (clean-css compatible)."""

    enabled: bool = True
    level: int = Field(default=1, ge=0, le=2)
    discard_comments: bool = True


class MinificationConfig(_Frozen):
    """Per content type minification blocks."""

    markup: MarkupMinification = Field(default_factory=MarkupMinification)
    script: ScriptMinification = Field(default_factory=ScriptMinification)
    stylesheet: StylesheetMinification = Field(default_factory=StylesheetMinification)


class DevServerConfig(_Frozen):
    """Development server settings."""

    port: int = Field(default=3000, ge=0, le=65535)
    host: str = "localhost"
    hot_reload: bool = True
    watch: list[str] = Field(
        default_factory=lambda: [
            "src/**/*",
            "public/**/*",
            "*.js",
            "*.json",
            "*.html",
            "*.css",
            "*.yaml",
        ]
    )
    ignore: list[str] = Field(
        default_factory=lambda: ["node_modules", "dist", ".git", "__pycache__"]
    )
    ignore_files: list[str] = Field(default_factory=lambda: [".DS_Store", "*.swp", "*~"])


class ProdServerConfig(_Frozen):
    """Production server settings."""

    port: int = Field(default=8080, ge=0, le=65535)
    host: str = "localhost"
    compression: bool = True
    caching: bool = True


class CleanupConfig(_Frozen):
    """Output cleanup and precompression settings."""

    patterns: list[str] = Field(
        default_factory=lambda: [".DS_Store", "Thumbs.db", "*.tmp", "*.bak", "*.log"]
    )
    compression_threshold: float = Field(default=0.8, gt=0.0, le=1.0)
    compressible_extensions: list[str] = Field(
        default_factory=lambda: [".html", ".js", ".css", ".json", ".svg", ".txt"]
    )


class ReportingConfig(_Frozen):
    """Build report switches."""

    show_stats: bool = True
    warn_large_files: bool = True
    large_file_threshold: int = Field(default=250_000, ge=0)


class TemplateEngineConfig(_Frozen):
    """Template language options."""

    delimiters: tuple[str, str] = ("{{", "}}")
    component_separator: str = Field(default="-", min_length=1)


class ToolsConfig(_Frozen):
    """
    Enhanced optimization provider selection.

    provider:
    - "auto": use the node tools found on PATH, baseline for the rest
    - "node": same as auto, but warn for every missing tool at startup
    - "none": baseline transforms only
    """

    provider: str = Field(default="auto", pattern=r"^(auto|node|none)$")
    timeout_seconds: float = Field(default=60.0, gt=0)
    markup: str = "html-minifier-terser"
    script: str = "terser"
    stylesheet: str = "cleancss"


class AppConfig(_Frozen):
    """Entry document settings."""

    title: str = "Beni.js App"
    css: list[str] = Field(default_factory=list)


class BuildConfiguration(_Frozen):
    """
    The complete, immutable configuration of one Beni invocation.

    Built by merging defaults with the project's beni.config.yaml
    (see beni.core.config.load_config).
    """

    root: Path = Field(default_factory=Path.cwd)
    directories: DirectoriesConfig = Field(default_factory=DirectoriesConfig)
    minify: bool = True
    optimize: bool = True
    compress: bool = True
    drop_diagnostics: bool = True
    minification: MinificationConfig = Field(default_factory=MinificationConfig)
    dev_server: DevServerConfig = Field(default_factory=DevServerConfig)
    prod_server: ProdServerConfig = Field(default_factory=ProdServerConfig)
    cleanup: CleanupConfig = Field(default_factory=CleanupConfig)
    reporting: ReportingConfig = Field(default_factory=ReportingConfig)
    template_engine: TemplateEngineConfig = Field(default_factory=TemplateEngineConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    app: AppConfig = Field(default_factory=AppConfig)

    # Resolved directories

    @property
    def source_dir(self) -> Path:
        return self.root / self.directories.source

    @property
    def templates_dir(self) -> Path:
        return self.root / self.directories.templates

    @property
    def public_dir(self) -> Path:
        return self.root / self.directories.public

    @property
    def output_dir(self) -> Path:
        return self.root / self.directories.output


class ReloadMessage(BaseModel):
    """The payload pushed to every connected development client."""

    type: str = "reload"
    file: str
    timestamp: int


@dataclass(frozen=True)
class WatchEvent:
    """A single filesystem change, consumed immediately to produce a broadcast."""

    path: str
    kind: WatchEventKind
    timestamp: float = field(default_factory=time.time)

    def to_message(self) -> ReloadMessage:
        """Build the wire message for this event (timestamp in epoch millis)."""
        return ReloadMessage(file=self.path, timestamp=int(self.timestamp * 1000))
