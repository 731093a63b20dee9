"""Navigation port — read and clear the current location's query parameters.

Used by the link-based invitation resolver (``?invite=<listId>&email=<addr>``).
"""

from __future__ import annotations

from typing import Protocol


class NavigationPort(Protocol):
    def get_param(self, name: str) -> str | None: ...

    def clear_params(self) -> None: ...
