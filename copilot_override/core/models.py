"""Response models for the management and health surfaces."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class ResponseData(BaseModel):
    status: str
    data: Any = None
    msg: str = ""

    @classmethod
    def success(cls, msg: str, data: Any = None) -> "ResponseData":
        return cls(status="success", data=data, msg=msg)

    @classmethod
    def fail(cls, msg: str) -> "ResponseData":
        return cls(status="fail", data=None, msg=msg)

    @property
    def ok(self) -> bool:
        return self.status == "success"


class Pong(BaseModel):
    now: int
    status: str = "ok"
    ns1: str = "200 OK"


class ModelCapabilities(BaseModel):
    family: str
    object: str = "model_capabilities"
    type: str


class ModelDescriptor(BaseModel):
    capabilities: ModelCapabilities
    id: str
    name: str
    object: str = "model"
    version: str
