import uuid
from typing import Protocol


class IIDGenerator(Protocol):
    """
    Protocol for authenticator record id generation.
    Hosts plug in their own format (UUIDv7, Snowflake, database sequence).
    """

    def next_id(self) -> str:
        """Generates the next unique identifier."""
        ...


class UUID4Generator(IIDGenerator):
    """Default id generator using UUIDv4."""

    def next_id(self) -> str:
        """Returns a string representation of a random UUIDv4."""
        return str(uuid.uuid4())
