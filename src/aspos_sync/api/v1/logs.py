"""Debug log endpoints."""

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from aspos_sync.logging_setup import get_debug_log

router = APIRouter()


@router.get("", response_class=PlainTextResponse)
async def read_log() -> str:
    """Return the debug log as plain text."""
    return get_debug_log().read()


@router.delete("")
async def clear_log() -> dict[str, bool]:
    """Empty the debug log."""
    get_debug_log().clear()
    return {"cleared": True}
