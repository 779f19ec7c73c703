"""Endpoint de salud mínimo para validaciones rápidas."""
from fastapi import APIRouter, Request

router = APIRouter(prefix="/health", tags=["health"])


@router.get("", summary="Estado del servicio")
async def healthcheck(request: Request) -> dict[str, str | int]:
    """Indica que la API está viva y cuántas conversaciones tiene registradas."""
    records = await request.app.state.store.records()
    return {"status": "ok", "conversations": len(records)}
