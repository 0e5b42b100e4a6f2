"""Business logic services.

This package contains the synthetic workload, the strict form decoder used
by the load endpoint, and the runtime introspection helpers behind the
diagnostics endpoints.
"""
