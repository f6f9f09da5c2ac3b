"""Configuration objects for kube-lifecycle."""

from dataclasses import dataclass, field

from .propagation import PropagationPolicy
from .retry import Backoff, DEFAULT_RETRY


@dataclass
class ClientConfig:
    """Configuration shared by the typed and dynamic clients."""

    namespace: str = "default"
    """Namespace used when a record does not specify one."""

    propagation_policy: PropagationPolicy = PropagationPolicy.BACKGROUND
    """Cascade policy used when a delete does not specify one."""

    backoff: Backoff = field(default=DEFAULT_RETRY)
    """Retry schedule used by `mutate`."""

    timeout: float | None = None
    """Time budget in seconds for a single verb without an explicit deadline."""
