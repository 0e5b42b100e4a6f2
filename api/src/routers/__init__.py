"""API routers.

- ``load``: the synthetic CPU-burning endpoint
- ``diagnostics``: runtime profiling and introspection endpoints
"""
