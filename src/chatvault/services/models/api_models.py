from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """ Wire models use camelCase field names """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorResponse(BaseModel):
    error: str
    required: list[str] | None = None


class HealthResponse(BaseModel):
    status: str
    timestamp: str
