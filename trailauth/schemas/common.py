"""
Shared schema configuration.

Bodies use camelCase on the wire and snake_case in Python.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MessageResponse(CamelModel):
    message: str = Field(description="Human-readable outcome")


class ErrorBody(CamelModel):
    code: str
    message: str
    details: Optional[dict] = None


class ErrorResponse(CamelModel):
    """Shape of every error returned by the API."""
    error: ErrorBody
    timestamp: str
