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
# TOOL PROVIDERS - ENHANCED OPTIMIZATION CAPABILITIES
# -----------------------------------------------------------------------------
# Responsibility: Wrap the optional external minifiers (terser, clean-css,
# html-minifier-terser) behind one capability provider that is selected once
# at startup from configuration.
#
# The selection is logged, so whether a build runs enhanced or baseline is
# visible up front instead of being discovered per file.
# -----------------------------------------------------------------------------

import json
import os
import shutil
import subprocess

from rich.console import Console

from beni.domain.models import BuildConfiguration, ContentKind

console = Console()


class OptimizationDelegationFailure(Exception):
    """Raised when an enhanced tool is missing, times out or exits non-zero."""

    def __init__(self, message: str, kind: ContentKind, tool: str | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.tool = tool


class ToolProvider:
    """
    Base capability provider: supports nothing.

    Subclasses advertise the content kinds they can handle through
    supports() and perform the transform in run().
    """

    name = "baseline"

    def supports(self, kind: ContentKind) -> bool:
        return False

    def run(self, kind: ContentKind, content: str) -> str:
        raise OptimizationDelegationFailure(
            f"No enhanced tool available for {kind.value}", kind
        )

    def describe(self) -> str:
        return "baseline transforms only"


class BaselineProvider(ToolProvider):
    """Explicit 'no enhanced tools' provider (tools.provider: none)."""


class NodeToolProvider(ToolProvider):
    """
    Delegates to node-based CLI minifiers found on PATH.

    Every tool reads the asset from stdin and writes the result to stdout.
    """

    name = "node"

    def __init__(
        self,
        executables: dict[ContentKind, str],
        arguments: dict[ContentKind, list[str]],
        timeout: float = 60.0,
    ) -> None:
        """
        Initialize the provider.

        Args:
            executables: Resolved executable path per supported content kind.
            arguments: CLI arguments per content kind.
            timeout: Maximum seconds a single tool invocation may run.
        """
        self._executables = dict(executables)
        self._arguments = dict(arguments)
        self._timeout = timeout

    def supports(self, kind: ContentKind) -> bool:
        return kind in self._executables

    def describe(self) -> str:
        if not self._executables:
            return "no node tools found - baseline transforms only"
        tools = ", ".join(
            f"{kind.value}={os.path.basename(exe)}"
            for kind, exe in sorted(self._executables.items(), key=lambda item: item[0].value)
        )
        return f"node tools: {tools}"

    def run(self, kind: ContentKind, content: str) -> str:
        """
        Run the tool for kind over content.

        Raises:
            OptimizationDelegationFailure: If the tool is unsupported, times
                out, cannot be started or exits with a non-zero status.
        """
        executable = self._executables.get(kind)
        if executable is None:
            return super().run(kind, content)

        cmd = [executable, *self._arguments.get(kind, [])]
        try:
            result = subprocess.run(
                cmd,
                input=content,
                capture_output=True,
                text=True,
                timeout=self._timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise OptimizationDelegationFailure(
                f"{executable} timed out after {self._timeout}s", kind, executable
            ) from e
        except OSError as e:
            raise OptimizationDelegationFailure(
                f"{executable} could not be started: {e}", kind, executable
            ) from e

        if result.returncode != 0:
            stderr = (result.stderr or "").strip().splitlines()
            detail = stderr[-1] if stderr else f"exit code {result.returncode}"
            raise OptimizationDelegationFailure(
                f"{executable} failed: {detail}", kind, executable
            )
        return result.stdout


def tool_arguments(config: BuildConfiguration) -> dict[ContentKind, list[str]]:
    """Translate the per-type minification blocks into CLI arguments."""
    script = config.minification.script
    stylesheet = config.minification.stylesheet
    markup = config.minification.markup

    compress = [
        f"passes={script.passes}",
        f"drop_debugger={str(script.drop_debugger and config.drop_diagnostics).lower()}",
    ]
    if config.drop_diagnostics and script.pure_funcs:
        # calls terser may drop; everything else on console stays
        pure_funcs = json.dumps(script.pure_funcs, separators=(",", ":"))
        compress.append(f"pure_funcs={pure_funcs}")
    script_args = ["--compress", ",".join(compress)]
    if script.mangle:
        script_args += ["--mangle", "toplevel"]
    script_args += ["--comments", "some" if script.comments else "false"]

    stylesheet_args = [f"-O{stylesheet.level}"]

    markup_flags = {
        "--collapse-whitespace": markup.collapse_whitespace,
        "--remove-comments": markup.remove_comments,
        "--remove-redundant-attributes": markup.remove_redundant_attributes,
        "--remove-script-type-attributes": markup.remove_redundant_attributes,
        "--remove-style-link-type-attributes": markup.remove_redundant_attributes,
        "--use-short-doctype": markup.use_short_doctype,
        "--minify-css": markup.minify_css,
        "--minify-js": markup.minify_js,
    }
    markup_args = [flag for flag, enabled in markup_flags.items() if enabled]

    return {
        ContentKind.SCRIPT: script_args,
        ContentKind.STYLESHEET: stylesheet_args,
        ContentKind.MARKUP: markup_args,
    }


def select_provider(config: BuildConfiguration) -> ToolProvider:
    """
    Choose the enhanced-optimization provider once, from configuration.

    - optimize: false or tools.provider: none -> BaselineProvider
    - auto / node -> NodeToolProvider over whichever tools are on PATH

    Returns:
        The provider to hand to every AssetOptimizer of this invocation.
    """
    tools = config.tools
    if not config.optimize or tools.provider == "none":
        console.print("[dim][OPTIMIZER] Enhanced tools disabled - baseline transforms only[/dim]")
        return BaselineProvider()

    wanted = {
        ContentKind.MARKUP: tools.markup,
        ContentKind.SCRIPT: tools.script,
        ContentKind.STYLESHEET: tools.stylesheet,
    }
    found: dict[ContentKind, str] = {}
    for kind, tool in wanted.items():
        path = shutil.which(tool)
        if path:
            found[kind] = path
        elif tools.provider == "node":
            console.print(
                f"[yellow][OPTIMIZER] {tool} not found on PATH - "
                f"{kind.value} falls back to baseline[/yellow]"
            )

    provider = NodeToolProvider(found, tool_arguments(config), timeout=tools.timeout_seconds)
    console.print(f"[cyan][OPTIMIZER] Provider: {provider.describe()}[/cyan]")
    return provider
