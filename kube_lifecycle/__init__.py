"""
kube-lifecycle manages versioned resource objects held by a kubernetes API
server: create, mutate safely under concurrent writers, list and delete with
a cascade policy.

Two client surfaces share the same connection:
  - `client.ResourceClient` is bound to a typed record such as `Deployment`
  - `dynamic.DynamicClient` works on schema-less documents addressed by path

Read-modify-write cycles are retried on version conflicts by
`retry.ConflictRetryExecutor`, exposed on both clients as `mutate`.
"""

__all__ = [
    "client",
    "connection",
    "deadline",
    "document",
    "dynamic",
    "exceptions",
    "manifest",
    "propagation",
    "retry",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]
