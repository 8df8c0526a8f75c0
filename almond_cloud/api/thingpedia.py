"""Thingpedia RPC endpoints."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from almond_cloud.db.database import get_db
from almond_cloud.schemas.rpc import RpcErrorResponse, RpcRequest, RpcResponse
from almond_cloud.services.thingpedia_client import RPC_METHODS, UNSERVED_METHODS, ThingpediaClientCloud

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/thingpedia", tags=["thingpedia"])


@router.get("/rpc")
async def list_methods():
    """Methods callable through the RPC endpoint."""
    return {"methods": list(RPC_METHODS) + list(UNSERVED_METHODS)}


@router.post(
    "/rpc/{method}",
    response_model=RpcResponse,
    responses={
        400: {"model": RpcErrorResponse},
        403: {"model": RpcErrorResponse},
        404: {"model": RpcErrorResponse},
        501: {"model": RpcErrorResponse},
    },
)
async def call_method(
    method: str,
    request: RpcRequest,
    db: Session = Depends(get_db),
):
    """
    Call one Thingpedia method.

    Errors are translated to status codes by the application's exception
    handlers: unknown methods and resources 404, unauthorized versions 403,
    invalid parameters 400, methods this deployment does not serve 501.
    """
    logger.info(f"[thingpedia] RPC {method} (locale={request.locale}, args={len(request.args)})")

    client = ThingpediaClientCloud(request.developer_key, request.locale, db)
    result = await client.invoke(method, request.args)
    return RpcResponse(result=result)
