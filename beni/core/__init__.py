# -----------------------------------------------------------------------------
# CORE LAYER
# -----------------------------------------------------------------------------
# The build and serve pipeline of Beni:
# - TemplateCompiler: template language -> renderers + metadata
# - AssetOptimizer: markup / script / stylesheet transforms
# - BuildOrchestrator: sequential production build
# - SourceWatcher: filesystem events for the dev server
# - load_config: beni.config.yaml + .env
# -----------------------------------------------------------------------------

from .builder import BuildOrchestrator, BuildResult, FileSystemError, MissingEntryError, run_build
from .config import ConfigLoadError, load_config
from .optimizer import AssetOptimizer
from .report import BuildReport, analyze_output
from .templates import CompileError, ComponentDefinition, TemplateCompiler, TemplateDocument
from .watcher import SourceWatcher, WatchError, WatchFilter

__all__ = [
    "BuildOrchestrator", "BuildResult", "FileSystemError", "MissingEntryError", "run_build",
    "ConfigLoadError", "load_config",
    "AssetOptimizer",
    "BuildReport", "analyze_output",
    "CompileError", "ComponentDefinition", "TemplateCompiler", "TemplateDocument",
    "SourceWatcher", "WatchError", "WatchFilter",
]
