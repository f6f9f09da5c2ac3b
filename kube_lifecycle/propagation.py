"""Cascade policies applied when deleting an object with dependents.

The client only forwards the selected policy to the store. Removing or
orphaning dependents is the responsibility of the store.
"""

from enum import StrEnum
from typing import Any

from .exceptions import InputException

__all__ = ["PropagationPolicy"]


class PropagationPolicy(StrEnum):
    """How dependents of a deleted object are handled."""

    FOREGROUND = "Foreground"
    """Dependents are removed before the owner is considered gone."""

    BACKGROUND = "Background"
    """The owner is removed immediately and dependents asynchronously."""

    ORPHAN = "Orphan"
    """Dependents are kept and their link to the owner is removed."""

    @classmethod
    def parse(cls, value: str) -> "PropagationPolicy":
        """Parse a policy name, ignoring case."""
        for policy in cls:
            if policy.value.lower() == value.lower():
                return policy
        choices = ", ".join(policy.value for policy in cls)
        raise InputException(
            f"Invalid propagation policy '{value}', expected one of: {choices}"
        )

    def delete_options(self) -> dict[str, Any]:
        """Return the DeleteOptions body sent with the delete request."""
        return {
            "apiVersion": "v1",
            "kind": "DeleteOptions",
            "propagationPolicy": self.value,
        }
