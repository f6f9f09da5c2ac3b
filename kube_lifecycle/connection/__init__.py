"""Connections to the store that holds resource objects.

A connection is supplied by the caller and only has to issue create, get,
update, list and delete requests for a resource collection. The clients in
`kube_lifecycle.client` and `kube_lifecycle.dynamic` are built on top of it.
"""

from .connection import Connection
from .in_memory import InMemoryConnection

__all__ = [
    "Connection",
    "InMemoryConnection",
]
