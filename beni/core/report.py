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
# BUILD REPORT - ARTIFACT ANALYSIS
# -----------------------------------------------------------------------------
# Responsibility: Walk an artifact tree and summarize it: counts, sizes,
# per-category totals, compression gains and large-file warnings.
#
# Compressed size per artifact:
# - the precomputed <path>.gz sibling when one exists
# - an in-memory gzip estimate for compressible extensions
# - the original size otherwise
# -----------------------------------------------------------------------------

from dataclasses import dataclass, field
from pathlib import Path

from rich.console import Console
from rich.table import Table

from beni.core.compression import GZIP_SUFFIX, gzip_bytes, is_compressible
from beni.domain.models import BuildConfiguration

console = Console()

CATEGORIES = {
    ".html": "html",
    ".js": "javascript",
    ".mjs": "javascript",
    ".css": "css",
    ".json": "data",
    ".xml": "data",
    ".txt": "data",
    ".png": "images",
    ".jpg": "images",
    ".jpeg": "images",
    ".gif": "images",
    ".svg": "images",
    ".ico": "images",
    ".webp": "images",
    ".woff": "fonts",
    ".woff2": "fonts",
    ".ttf": "fonts",
    ".eot": "fonts",
    ".pdf": "documents",
}


def category_of(path: Path | str) -> str:
    return CATEGORIES.get(Path(path).suffix.lower(), "other")


def format_bytes(size: int) -> str:
    """Human readable size (1024 based)."""
    if size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB"]
    index = 0
    while size >= 1024 ** (index + 1) and index < len(units) - 1:
        index += 1
    value = round(size / 1024**index, 1)
    if value.is_integer():
        value = int(value)
    return f"{value} {units[index]}"


def _ratio(size: int, compressed: int) -> float:
    return (size - compressed) / size * 100 if size > 0 else 0.0


@dataclass
class ArtifactStat:
    path: str
    size: int
    compressed_size: int
    category: str

    @property
    def saving(self) -> float:
        return _ratio(self.size, self.compressed_size)


@dataclass
class CategoryStat:
    count: int = 0
    size: int = 0
    compressed_size: int = 0

    @property
    def saving(self) -> float:
        return _ratio(self.size, self.compressed_size)


@dataclass
class BuildReport:
    """Summary of one artifact tree."""

    artifact_count: int = 0
    total_size: int = 0
    compressed_size: int = 0
    categories: dict[str, CategoryStat] = field(default_factory=dict)
    artifacts: list[ArtifactStat] = field(default_factory=list)
    large_files: list[ArtifactStat] = field(default_factory=list)
    templates: int = 0
    components: int = 0
    duration: float = 0.0

    @property
    def saving(self) -> float:
        return _ratio(self.total_size, self.compressed_size)

    def suggestions(self) -> list[str]:
        """Optimization hints derived from the numbers."""
        hints: list[str] = []
        if self.total_size and self.saving < 20:
            hints.append("Enable gzip on the server for better transfer sizes")
        if self.large_files:
            hints.append(f"{len(self.large_files)} large file(s) found - consider splitting them")
        images = self.categories.get("images")
        if images and images.size > 500 * 1024:
            hints.append("Consider optimizing images (WebP, recompression)")
        if self.total_size > 2 * 1024 * 1024:
            hints.append("Total bundle is large - consider lazy loading")
        return hints


def analyze_output(
    output_dir: Path,
    config: BuildConfiguration,
    templates: int = 0,
    components: int = 0,
    duration: float = 0.0,
) -> BuildReport:
    """Walk output_dir and build a BuildReport (gzip siblings are not artifacts)."""
    report = BuildReport(templates=templates, components=components, duration=duration)
    if not output_dir.is_dir():
        return report

    threshold = config.reporting.large_file_threshold
    for path in sorted(output_dir.rglob("*")):
        if not path.is_file() or path.suffix == GZIP_SUFFIX:
            continue
        size = path.stat().st_size
        sibling = path.with_name(path.name + GZIP_SUFFIX)
        if sibling.is_file():
            compressed = sibling.stat().st_size
        elif is_compressible(path, config):
            compressed = min(size, len(gzip_bytes(path.read_bytes())))
        else:
            compressed = size

        stat = ArtifactStat(
            path=path.relative_to(output_dir).as_posix(),
            size=size,
            compressed_size=compressed,
            category=category_of(path),
        )
        report.artifacts.append(stat)
        report.artifact_count += 1
        report.total_size += size
        report.compressed_size += compressed

        bucket = report.categories.setdefault(stat.category, CategoryStat())
        bucket.count += 1
        bucket.size += size
        bucket.compressed_size += compressed

        if config.reporting.warn_large_files and size > threshold:
            report.large_files.append(stat)

    report.large_files.sort(key=lambda s: s.size, reverse=True)
    return report


def print_report(report: BuildReport, detailed: bool = False) -> None:
    """Render the report as rich tables."""
    console.print(
        f"\n[bold]Build Stats[/bold]  templates: {report.templates}  "
        f"components: {report.components}  time: {report.duration:.2f}s"
    )

    table = Table(title="Artifacts by category")
    table.add_column("Category", style="cyan")
    table.add_column("Files", justify="right")
    table.add_column("Original", justify="right")
    table.add_column("Gzip", justify="right")
    table.add_column("Saved", justify="right", style="green")
    for name, stat in sorted(report.categories.items(), key=lambda item: -item[1].size):
        table.add_row(
            name,
            str(stat.count),
            format_bytes(stat.size),
            format_bytes(stat.compressed_size),
            f"{stat.saving:.1f}%",
        )
    table.add_row(
        "[bold]total[/bold]",
        str(report.artifact_count),
        format_bytes(report.total_size),
        format_bytes(report.compressed_size),
        f"{report.saving:.1f}%",
    )
    console.print(table)

    if detailed:
        files = Table(title="Artifacts")
        files.add_column("Path")
        files.add_column("Original", justify="right")
        files.add_column("Gzip", justify="right")
        for stat in sorted(report.artifacts, key=lambda s: -s.size):
            files.add_row(stat.path, format_bytes(stat.size), format_bytes(stat.compressed_size))
        console.print(files)

    for stat in report.large_files:
        console.print(
            f"[yellow][BUILD] Large file: {stat.path} "
            f"({format_bytes(stat.size)} -> {format_bytes(stat.compressed_size)})[/yellow]"
        )
    for hint in report.suggestions():
        console.print(f"[dim]  - {hint}[/dim]")
