"""Common pydantic base model for everything that crosses the wire.

The remote analytics API and the rendering layer speak camelCase
(``completionRate``); Python code uses snake_case attributes.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Accepts snake_case or camelCase input, serializes camelCase."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> dict:
        """JSON-native dict using wire (camelCase) names."""
        return self.model_dump(mode="json", by_alias=True)
