"""Follow-up cron endpoint — fires due WhatsApp follow-ups."""
import logging

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from fullhouse_agent.app.config import get_settings
from fullhouse_agent.infra.database import get_db

logger = logging.getLogger(__name__)


async def verify_internal_token(x_internal_token: str = Header(...)):
    """Verify that the request includes a valid internal auth token."""
    settings = get_settings()
    if x_internal_token != settings.internal_api_token:
        raise HTTPException(status_code=401, detail="Invalid internal token")


router = APIRouter(
    prefix="/api/whatsapp/follow-ups",
    tags=["whatsapp-follow-ups"],
    dependencies=[Depends(verify_internal_token)],
)


@router.post("/process")
async def process_follow_ups(db: AsyncSession = Depends(get_db)):
    """Send every pending follow-up whose trigger time has passed.

    Called by an external cron; the app also runs the same job in a loop.
    """
    from fullhouse_agent.services.follow_up_processor import process_due

    results = await process_due(db)

    logger.info("Follow-up process: %s", results)
    return {"ok": True, **results}
