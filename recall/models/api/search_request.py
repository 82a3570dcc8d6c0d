"""
Search, chat and sync API request models.
Used by routes for input validation.
"""

from pydantic import BaseModel, Field


class SearchRequest(BaseModel):
    """Free-text search across the user's connected platforms."""

    user_id: str = Field(..., min_length=1, description="User whose accounts are searched")
    query: str = Field(default="", max_length=2000, description="Free-text query")
    platforms: list[str] = Field(
        default_factory=lambda: ["gmail"],
        description="Platforms to search (gmail, discord, slack). Unknown names are ignored",
    )


class ChatRequest(BaseModel):
    """Question answered from the user's messages."""

    user_id: str = Field(..., min_length=1, description="User whose accounts are searched")
    message: str = Field(..., min_length=1, max_length=2000, description="User question")
    platforms: list[str] = Field(
        default_factory=lambda: ["gmail"], description="Platforms to search"
    )
