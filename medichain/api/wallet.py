from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from ..core.wallet import ConnectionController, TransactionRejectedError, ValidationError
from ..providers.sui import format_sui

router = APIRouter(prefix="/wallet")


class ConnectRequest(BaseModel):
    provider_index: int = Field(ge=0, description="Index into GET /wallet/providers")


class ManualConnectRequest(BaseModel):
    address: str = Field(description="Sui address (0x + 64 hex characters)")


class TransactionRequest(BaseModel):
    payload: Dict[str, Any] = Field(description="Transaction payload handed to the wallet unchanged")


def get_controller(request: Request) -> ConnectionController:
    return request.app.state.controller


@router.get("/state")
async def wallet_state(controller: ConnectionController = Depends(get_controller)) -> Dict[str, Any]:
    return controller.state.to_dict()


@router.get("/providers")
async def wallet_providers(
    refresh: bool = False,
    controller: ConnectionController = Depends(get_controller),
) -> Dict[str, Any]:
    providers = controller.refresh_providers() if refresh else controller.providers
    return {"providers": [handle.to_dict(index) for index, handle in enumerate(providers)]}


@router.post("/connect")
async def wallet_connect(
    body: ConnectRequest,
    controller: ConnectionController = Depends(get_controller),
) -> Dict[str, Any]:
    state = await controller.request_connect(body.provider_index)
    return state.to_dict()


@router.post("/connect/manual")
async def wallet_connect_manual(
    body: ManualConnectRequest,
    controller: ConnectionController = Depends(get_controller),
) -> Dict[str, Any]:
    state = await controller.request_manual_connect(body.address)
    if state.validation_error:
        raise HTTPException(
            status_code=422,
            detail=ValidationError(state.validation_error, details={"address": body.address}).to_dict(),
        )
    return state.to_dict()


@router.post("/demo")
async def wallet_demo(controller: ConnectionController = Depends(get_controller)) -> Dict[str, Any]:
    state = await controller.enter_demo_mode()
    return state.to_dict()


@router.post("/disconnect")
async def wallet_disconnect(controller: ConnectionController = Depends(get_controller)) -> Dict[str, Any]:
    state = await controller.disconnect()
    return state.to_dict()


@router.post("/retry")
async def wallet_retry(controller: ConnectionController = Depends(get_controller)) -> Dict[str, Any]:
    state = await controller.retry()
    return state.to_dict()


@router.post("/balance/refresh")
async def wallet_balance_refresh(controller: ConnectionController = Depends(get_controller)) -> Dict[str, Any]:
    balance = await controller.refresh_balance()
    cached = controller.state.cached_balance
    return {
        "refreshed": balance is not None,
        "balance": str(cached) if cached is not None else None,
        "formatted": format_sui(cached),
        "state": controller.state.to_dict(),
    }


@router.post("/transactions")
async def wallet_transaction(
    body: TransactionRequest,
    controller: ConnectionController = Depends(get_controller),
) -> Dict[str, Optional[Any]]:
    outcome = await controller.sign_and_execute(body.payload)
    if not outcome.success:
        raise HTTPException(status_code=409, detail=TransactionRejectedError(outcome.error).to_dict())
    return {"success": True, "result": outcome.result}
