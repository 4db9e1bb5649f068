"""Request/response schemas for model settings."""
from typing import Optional

from pydantic import BaseModel


class ModelOut(BaseModel):
    id: str
    name: str
    enabled: bool
    isDefault: bool


class ProviderErrorOut(BaseModel):
    provider: str
    message: str


class ModelsListOut(BaseModel):
    models: list[ModelOut]
    missingModels: list[ModelOut]  # Settings whose model the catalog no longer offers
    providerErrors: list[ProviderErrorOut]


class SelectableModelOut(BaseModel):
    id: str
    name: str
    isDefault: bool


class CatalogModelOut(BaseModel):
    id: str
    name: str


class UpdateModelIn(BaseModel):
    modelId: Optional[str] = None
    modelName: Optional[str] = None
    enabled: Optional[bool] = None
    isDefault: Optional[bool] = None


class OperationOut(BaseModel):
    success: bool = True
    message: str
