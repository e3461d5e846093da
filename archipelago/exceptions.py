"""
Exceptions raised by the island coordination layer
"""


class ArchipelagoError(Exception):
    """Base class for coordination errors"""


class UnknownIslandError(ArchipelagoError, LookupError):
    """
    Raised when a topology is asked about an island it does not know.

    This is a programming error (an island that never registered, or an index
    outside the overlay), so it is never swallowed by the best-effort
    migration and aggregation paths.
    """

    def __init__(self, island_id):
        super().__init__(f"Unexpected sender: {island_id}")
        self.island_id = island_id


class RegistrationError(ArchipelagoError, LookupError):
    """Raised by a name service when an island endpoint cannot be resolved"""

    def __init__(self, island_id, reason: str = "not bound"):
        super().__init__(f"Cannot resolve island {island_id}: {reason}")
        self.island_id = island_id
