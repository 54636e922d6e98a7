from .constants import HEADER_HASH_FIELD, TIME_FIELD
from .core import principal_to_uint256

__all__ = ["FixtureEntropySource"]
__test__ = False


class FixtureEntropySource:
    """Deterministic entropy source for tests."""

    def __init__(
        self,
        block_hash: bytes = b"mock-block-hash",
        block_time: int = 1234567,
        sender: int | None = None,
    ):
        """Initialize fixed block values.

        Args:
            block_hash: Header hash returned for every offset.
            block_time: Timestamp returned for every offset.
            sender: Fixed integer for every identity, or ``None`` to hash
                identities with :func:`principal_to_uint256`.
        """

        self.block_hash = block_hash
        self.block_time = block_time
        self.sender = sender
        self.calls: list[tuple[str, int]] = []

    def block_info(self, field: str, offset: int) -> bytes | int:
        """Return the fixture hash or time and record the call."""
        self.calls.append((field, offset))
        if field == HEADER_HASH_FIELD:
            return self.block_hash
        if field == TIME_FIELD:
            return self.block_time
        raise ValueError(f"unknown block info field: {field}")

    def identity_to_integer(self, identity: str) -> int:
        if self.sender is not None:
            return self.sender
        return principal_to_uint256(identity)
