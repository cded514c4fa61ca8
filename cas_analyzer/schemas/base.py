"""Shared pydantic configuration for payloads exchanged with the API layer."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Model serialized with camelCase keys, populated by either spelling."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict:
        """Return a JSON-safe dict using the external key spelling."""

        return self.model_dump(mode="json", by_alias=True)
