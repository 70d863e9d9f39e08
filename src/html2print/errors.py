"""Exception hierarchy for html2print."""

from __future__ import annotations


class Html2PrintError(RuntimeError):
    pass


class RootNotFoundError(Html2PrintError):
    def __init__(self, root_id: str) -> None:
        super().__init__(f"Element with id {root_id} not found")
        self.root_id = root_id


class EmptyResultError(Html2PrintError):
    pass


class ImageResolutionError(Html2PrintError):
    """Raised inside the image resolver; extraction drops the image instead."""


class RenderingError(Html2PrintError):
    pass
