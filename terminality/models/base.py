from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Model whose JSON keys are camelCase, as authored by the quest designer."""

    model_config = {"alias_generator": to_camel, "populate_by_name": True}
