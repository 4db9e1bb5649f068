"""Request/response schemas for projects and chat titles."""
from pydantic import BaseModel, Field


class ProjectOut(BaseModel):
    id: str
    name: str
    createdAt: str  # ISO datetime


class ProjectCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=255)


class TitleIn(BaseModel):
    message: str


class TitleOut(BaseModel):
    title: str
    modelId: str | None = None
