"""
AI authoring helpers — /api/v1/ai
"""
import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_session
from app.dependencies import get_context
from app.schemas.ai import RewritePlainEnglishRequest
from app.services.ai_adapters import AIProviderError
from app.services.ai_service import AINotConfiguredException, AIService
from app.services.permissions import authorize, require_organization
from app.services.session_context import SessionContext

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/ai", tags=["AI"])


async def _stream_response(chunks) -> StreamingResponse:
    """Pull the first chunk eagerly so upstream failures become an HTTP error, not a broken stream."""
    try:
        first = await chunks.__anext__()
    except StopAsyncIteration:
        first = ""
    except AIProviderError as e:
        raise HTTPException(502, str(e))

    async def body():
        if first:
            yield first
        try:
            async for chunk in chunks:
                yield chunk
        except AIProviderError:
            logger.exception("AI stream interrupted")

    return StreamingResponse(body(), media_type="text/plain; charset=utf-8")


@router.post("/rewrite-plain-english", summary="Rewrite policy text in plain English (streamed)")
async def rewrite_plain_english(body: RewritePlainEnglishRequest, ctx: SessionContext = Depends(get_context),
                                s: AsyncSession = Depends(get_session)):
    authorize(ctx, "ai.use")
    org_id = require_organization(ctx)
    try:
        chunks = await AIService(s).rewrite_plain_english(org_id, body.policy_text)
    except AINotConfiguredException as e:
        raise HTTPException(503, str(e))
    return await _stream_response(chunks)
