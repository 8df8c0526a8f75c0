"""
Thingpedia RPC Schemas
"""

from typing import Any, List, Optional

from pydantic import BaseModel, Field


class RpcRequest(BaseModel):
    """Request body of a Thingpedia RPC call."""

    developer_key: Optional[str] = Field(
        None,
        description="Developer key of the calling organization (omit for anonymous access)",
    )
    locale: str = Field("en-US", description="Caller locale, e.g. en-US or it-IT")
    args: List[Any] = Field(
        default_factory=list,
        description="Positional arguments of the method",
        examples=[["com.bing", "application/json"]],
    )


class RpcResponse(BaseModel):
    """Successful RPC result."""

    result: Any = None


class RpcErrorResponse(BaseModel):
    """Failed RPC call."""

    error: str
    code: Optional[str] = None
