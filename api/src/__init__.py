"""FastAPI service generating synthetic CPU load.

This package provides the load endpoint used as a target by load-testing
tools, together with health, metrics and runtime diagnostics endpoints.
"""

__version__ = "1.0.0"
