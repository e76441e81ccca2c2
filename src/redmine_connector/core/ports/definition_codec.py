"""
Definition Codec Port - Text format of stored custom field definitions.
"""

from abc import ABC, abstractmethod

from ..domain.entities import CustomFieldDefinition


class DefinitionCodecPort(ABC):
    """Reads and writes custom field definitions as text."""

    @abstractmethod
    def decode_custom_field_definitions(self, payload: str) -> list[CustomFieldDefinition]:
        """Definitions found in ``payload``; malformed input yields an empty list."""
        ...

    @abstractmethod
    def encode_custom_field_definitions(self, definitions: list[CustomFieldDefinition]) -> str:
        ...
