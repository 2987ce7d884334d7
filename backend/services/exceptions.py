"""Domain exceptions raised by services for local entities and caller input."""


class NotFoundError(Exception):
    """A local entity does not exist (or does not belong to the caller)."""

    def __init__(self, message: str, entity: str = ""):
        self.entity = entity
        super().__init__(message)


class ValidationError(Exception):
    """Caller input was rejected before any state was changed."""

    pass
