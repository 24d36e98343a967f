"""
CredentialStore protocol — a keyed store for the dashboard's persisted credential.

Values are kept as plain text until explicitly deleted; there is no expiry.
"""

from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class CredentialStore(Protocol):
    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None if unset."""
        ...

    def set(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one."""
        ...

    def delete(self, key: str) -> bool:
        """Remove a value. Returns True if something was removed."""
        ...
