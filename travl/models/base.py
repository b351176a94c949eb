"""Shared pydantic base for wire models."""
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Model whose JSON form uses camelCase keys; snake_case is accepted on input too."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        """Dump as the JSON-ready camelCase dict sent over HTTP."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
