from typing import Any, Dict

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/healthz")
async def health_check(request: Request) -> Dict[str, Any]:
    """Health check endpoint that verifies the ledger provider and wallet core"""

    controller = request.app.state.controller
    ledger_status = await controller.ledger.health_check()

    return {
        "status": "healthy" if ledger_status["status"] in ["healthy", "unavailable"] else "degraded",
        "network": controller.network,
        "ledger": ledger_status,
        "wallet": {
            "status": controller.status.value,
            "providers": len(controller.providers),
            "polling": controller.poller.is_running,
        },
    }
