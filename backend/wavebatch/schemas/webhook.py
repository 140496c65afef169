"""Pydantic schemas for the generation engine webhook."""

from pydantic import AliasChoices, BaseModel, Field


class WebhookPayload(BaseModel):
    id: str = Field(..., min_length=1, description="Engine request id")
    status: str = Field(..., min_length=1)
    output: list[str] | None = Field(None, validation_alias=AliasChoices("output", "outputs"))
    error: str | None = None

    model_config = {"extra": "ignore"}


class WebhookAck(BaseModel):
    success: bool = True
