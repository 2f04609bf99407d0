"""
Routing subpackage.

Exposes the routers so they can be imported succinctly in ``api/main.py``.
"""
from . import (  # noqa: F401
    admin,
    notebooks,
    personas,
    sessions,
    storage,
    webhook,
)
