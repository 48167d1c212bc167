# -----------------------------------------------------------------------------
# BENI
# -----------------------------------------------------------------------------
# Build and serve pipeline for small single-page applications.
# -----------------------------------------------------------------------------

__version__ = "1.0.0"
