import re
import logging
from typing import List, Optional

from openai import AsyncOpenAI
from tenacity import retry, wait_exponential, stop_after_attempt

from ..config import Settings

logger = logging.getLogger(__name__)

PATOIS_MARKERS = [
    "mi", "dem", "yuh", "weh", "deh", "nuh", "seh", "fi", "inna", "pon",
    "gwaan", "cyaan", "bredrin", "sistren", "pickney", "ting", "waan", "yaad", "bwoy", "gyal",
]
PATOIS_MIN_MARKERS = 2

TRANSLATE_SYSTEM_PROMPT = (
    "You are a Jamaican Patois to English translator. Translate ONLY if the text contains clear Patois. "
    "Preserve location names, job context, and Caribbean terms like \"promo\" (someone). "
    "Do not change regular English text."
)


def detect_patois_markers(text: str) -> List[str]:
    return [m for m in PATOIS_MARKERS if re.search(rf"\b{m}\b", text or "", re.I)]


def is_patois(text: str) -> bool:
    return len(detect_patois_markers(text)) >= PATOIS_MIN_MARKERS


class OpenAIClient:
    """Patois to English translation through an OpenAI-compatible chat API."""

    def __init__(self, settings: Settings) -> None:
        # Try Groq first (free), fallback to OpenAI
        groq_key = (settings.groq_api_key or "").strip()
        openai_key = (settings.openai_api_key or "").strip()

        if groq_key:
            self.client = AsyncOpenAI(api_key=groq_key, base_url="https://api.groq.com/openai/v1")
            self.model = settings.groq_model
            self.simulated = False
            logger.info("OpenAIClient: using Groq API")
        elif openai_key:
            self.client = AsyncOpenAI(api_key=openai_key)
            self.model = settings.openai_model
            self.simulated = False
            logger.info("OpenAIClient: using OpenAI API")
        else:
            self.client = None
            self.model = None
            self.simulated = True
            logger.info("OpenAIClient: no API key, translation disabled")

    @retry(wait=wait_exponential(min=1, max=10), stop=stop_after_attempt(3), reraise=True)
    async def translate_patois(self, text: str) -> Optional[str]:
        if self.simulated:
            return None
        chat = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": TRANSLATE_SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": (
                        f"Text: \"{text}\"\n\nIf this contains Jamaican Patois, translate to clear English. "
                        "If it's already English, return it unchanged. Keep Caribbean job terms like \"promo\" meaning \"someone\"."
                    ),
                },
            ],
            temperature=0.1,
            max_tokens=200,
        )
        content = chat.choices[0].message.content
        return content.strip() if content else None
