"""
Island identities.

An island is named ``<prefix><index><suffix>``, e.g. ``ClientNode3`` for a
distributed island or ``ClientNode3x`` for an island driven in-process by the
meta driver. The structured form is the source of truth; the string is derived
from it and only parsed back at transport boundaries.
"""

from dataclasses import dataclass

DEFAULT_CLIENT_PREFIX = "ClientNode"
META_SUFFIX = "x"


@dataclass(frozen=True, order=True)
class IslandId:
    """Stable identifier of one island"""

    prefix: str
    index: int
    suffix: str = ""

    def __post_init__(self):
        if not isinstance(self.index, int) or self.index < 0:
            raise ValueError(f"Island index must be a non-negative integer, got {self.index!r}")
        if self.suffix.isdigit() or (self.prefix and self.prefix[-1].isdigit()):
            raise ValueError(
                f"Prefix and suffix must not end/consist in digits: {self.prefix!r}, {self.suffix!r}"
            )

    def __str__(self) -> str:
        return f"{self.prefix}{self.index}{self.suffix}"

    def with_index(self, index: int) -> "IslandId":
        """Identity of another island of the same run (same prefix and suffix)"""
        return IslandId(self.prefix, index, self.suffix)

    @classmethod
    def parse(
        cls, text: str, prefix: str = DEFAULT_CLIENT_PREFIX, suffix: str = ""
    ) -> "IslandId":
        """
        Rebuild an identity from its string form.

        Args:
            text: String produced by ``str(island_id)``
            prefix: Expected prefix
            suffix: Expected suffix ("" for distributed islands)

        Raises:
            ValueError: if ``text`` does not have the expected shape
        """
        if not text.startswith(prefix):
            raise ValueError(f"Island id {text!r} does not start with {prefix!r}")
        body = text[len(prefix) :]
        if suffix:
            if not body.endswith(suffix):
                raise ValueError(f"Island id {text!r} does not end with {suffix!r}")
            body = body[: -len(suffix)]
        if not body.isdigit():
            raise ValueError(f"Island id {text!r} has no numeric index")
        return cls(prefix, int(body), suffix)


def as_island_id(value, prefix: str = DEFAULT_CLIENT_PREFIX, suffix: str = "") -> IslandId:
    """Accept either an ``IslandId`` or its string form"""
    if isinstance(value, IslandId):
        return value
    return IslandId.parse(str(value), prefix=prefix, suffix=suffix)


def client_id(index: int, prefix: str = DEFAULT_CLIENT_PREFIX) -> IslandId:
    """Identity of a distributed island"""
    return IslandId(prefix, index)


def meta_client_id(index: int, prefix: str = DEFAULT_CLIENT_PREFIX) -> IslandId:
    """Identity of an island owned by the meta driver"""
    return IslandId(prefix, index, META_SUFFIX)
