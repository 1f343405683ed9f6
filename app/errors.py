class DiscussionError(Exception):
    """Base class for errors raised by the discussion core."""


class NotFoundError(DiscussionError):
    """Unknown session or participant."""


class ValidationError(DiscussionError):
    """Input rejected before anything was written."""


class InvalidTransitionError(DiscussionError):
    """Requested status change does not move the session forward."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move session from '{current}' to '{target}'")


class GenerationFailure(DiscussionError):
    """The text generation service failed or returned unusable output."""
