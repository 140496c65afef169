"""Shared typed return types for backend services."""

from typing import Literal, TypedDict


class PreparedImages(TypedDict):
    subject: str
    references: list[str]


class RemoteResult(TypedDict):
    # created and processing both collapse to "pending"
    status: Literal["pending", "completed", "failed"]
    outputs: list[str]
