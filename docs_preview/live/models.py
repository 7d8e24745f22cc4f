"""Data models using Pydantic."""

from pydantic import BaseModel, ConfigDict, Field


class ChangeEvent(BaseModel):
    """A watched file was modified."""

    model_config = ConfigDict(frozen=True)

    file_identifier: str = Field(..., min_length=1)
