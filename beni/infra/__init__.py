# -----------------------------------------------------------------------------
# INFRASTRUCTURE LAYER
# -----------------------------------------------------------------------------
# Contains low-level wrappers around external tooling:
# - ToolProvider: capability provider for the optional node minifiers
# -----------------------------------------------------------------------------

from .tools import (
    BaselineProvider,
    NodeToolProvider,
    OptimizationDelegationFailure,
    ToolProvider,
    select_provider,
)

__all__ = [
    "BaselineProvider",
    "NodeToolProvider",
    "OptimizationDelegationFailure",
    "ToolProvider",
    "select_provider",
]
