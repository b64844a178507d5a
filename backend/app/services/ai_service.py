"""
AI Service — entry point for the optional AI authoring features.
Raises AINotConfiguredException when no provider is configured.
"""
import logging
from collections.abc import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.services.ai_adapters import AIAdapter, get_ai_adapter
from app.services.ai_prompts import plain_english_system_prompt, plain_english_user_message
from app.services.document_layout import organization_variables
from app.services.layout_renderer import extract_variables

logger = logging.getLogger(__name__)


class AINotConfiguredException(Exception):
    """Raised when AI is not configured or disabled."""


class AIService:

    def __init__(self, session: AsyncSession, adapter: AIAdapter | None = None):
        self.session = session
        self.adapter = adapter if adapter is not None else get_ai_adapter(settings)

    @property
    def is_available(self) -> bool:
        return self.adapter is not None

    def _require_ai(self):
        if not self.is_available:
            raise AINotConfiguredException("AI service is not configured.")

    async def rewrite_plain_english(self, organization_id: int, policy_text: str) -> AsyncIterator[str]:
        """Stream a plain-English rewrite of ``policy_text``."""
        self._require_ai()
        variables = await organization_variables(self.session, organization_id)
        system = plain_english_system_prompt(variables)
        user_message = plain_english_user_message(policy_text, extract_variables(policy_text))
        logger.info("AI plain-English rewrite for organization %s (%d chars)", organization_id, len(policy_text))
        return self.adapter.stream_completion(
            system=system,
            user_message=user_message,
            max_tokens=settings.AI_MAX_TOKENS,
            timeout=settings.AI_TIMEOUT_SECONDS,
        )
