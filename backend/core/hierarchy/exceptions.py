class HierarchyError(RuntimeError):
    """Base error for actor directory failures."""


class ActorNotFound(HierarchyError):
    """Raised when an actor id does not resolve."""


class InvalidHierarchy(HierarchyError):
    """Raised when a parent/child edge would violate the tier order."""


class CapabilityError(HierarchyError):
    """Raised when an actor lacks (or is granted an unknown) capability."""


class DataIntegrityError(HierarchyError):
    """Raised when an upward walk hits a cycle or exceeds the hop bound."""
