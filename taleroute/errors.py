"""Error taxonomy for Taleroute sessions and story loading."""

from __future__ import annotations

from typing import Iterable, List, Optional


class StoryError(Exception):
    """Base class for story engine failures."""


class MalformedGraphError(StoryError, ValueError):
    """Raised when an authored story cannot be loaded."""

    def __init__(self, errors: Iterable[str], source: Optional[str] = None) -> None:
        self.errors: List[str] = list(errors)
        self.source = source
        label = f"Invalid story data ({source})" if source else "Invalid story data"
        super().__init__(label + ":\n- " + "\n- ".join(self.errors))


class InvalidTransitionError(StoryError):
    """Raised when an action is not allowed in the current session state."""


class SessionBusyError(InvalidTransitionError):
    """Raised when an action arrives while another one is still resolving."""


class AuthoringGapError(StoryError):
    """No route of the chosen option matched the current tag pools."""

    def __init__(self, scene_id: str, option_id: str) -> None:
        self.scene_id = scene_id
        self.option_id = option_id
        super().__init__(
            f"Option '{option_id}' in scene '{scene_id}' has no route for the current tags."
        )
