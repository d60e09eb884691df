"""Pydantic models for the Roblox Asset Forge API."""

import time
import uuid
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from rbxmx import AssetNode
from forge_server import config


def _now_ms() -> int:
    return int(time.time() * 1000)


def default_root() -> AssetNode:
    return AssetNode(
        id="root",
        name=config.DEFAULT_ROOT_NAME,
        class_name=config.DEFAULT_ROOT_CLASS,
    )


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ChatMessage(CamelModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    role: Literal["user", "assistant"]
    content: str
    assets_generated: Optional[list[AssetNode]] = Field(None, alias="assetsGenerated")
    timestamp: int = Field(default_factory=_now_ms)


class ProjectState(CamelModel):
    history: list[ChatMessage] = Field(default_factory=list)
    explorer_root: AssetNode = Field(default_factory=default_root, alias="explorerRoot")
    project_name: str = Field(config.DEFAULT_PROJECT_NAME, alias="projectName")


class ChatRequest(CamelModel):
    message: str = Field(..., min_length=1, description="User message")
    history: list[ChatMessage] = Field(default_factory=list)
    explorer_root: AssetNode = Field(default_factory=default_root, alias="explorerRoot")
    provider: Literal["gemini", "claude"] = config.DEFAULT_PROVIDER
    model: Optional[str] = None


class ChatResponse(CamelModel):
    reply: str = ""
    message: Optional[ChatMessage] = None
    assets: list[AssetNode] = Field(default_factory=list)
    explorer_root: Optional[AssetNode] = Field(None, alias="explorerRoot")
    timings: Optional[dict] = None
    error: Optional[str] = None


class ImportRequest(CamelModel):
    xml: str = Field(..., description="rbxmx document text")
    explorer_root: Optional[AssetNode] = Field(None, alias="explorerRoot")


class ImportResponse(CamelModel):
    asset: Optional[AssetNode] = None
    explorer_root: Optional[AssetNode] = Field(None, alias="explorerRoot")
    stats: Optional[dict] = None
    error: Optional[str] = None


class ValidateRequest(CamelModel):
    asset_json: str = Field(..., alias="assetJson", description="Asset tree JSON string")


class ValidateResponse(CamelModel):
    valid: bool
    node_count: Optional[int] = Field(None, alias="nodeCount")
    error: Optional[str] = None


class LoadProjectRequest(CamelModel):
    content: str = Field(..., description="Saved project JSON text")


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = ""
    providers: dict = {}
