"""
Support chat backed by live website content
"""

from typing import Dict, List, Optional, Sequence
import asyncio

import httpx
from openai import AsyncOpenAI

from examprep.config import settings
from examprep.utils.cache import Cache
from examprep.utils.constants import (
    SITE_CONTEXT_UNAVAILABLE,
    SUPPORT_STATIC_CONTEXT,
    SUPPORT_SYSTEM_PROMPT,
)
from examprep.utils.error_handler import InternalError
from examprep.utils.helpers import clean_html
from examprep.utils.logger import logger

SITE_CONTEXT_KEY = "site_context"
PAGE_CHAR_LIMIT = 3000


class SiteContextService:
    """Fetches and caches plain-text content of the public website pages"""

    def __init__(
        self,
        urls: Optional[Sequence[str]] = None,
        timeout: Optional[float] = None,
        cache: Optional[Cache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.urls = list(urls) if urls is not None else settings.site_context_urls_list
        self.timeout = timeout if timeout is not None else settings.SITE_CONTEXT_TIMEOUT_SECONDS
        self.cache = cache if cache is not None else Cache(default_ttl=settings.SITE_CONTEXT_CACHE_SECONDS)
        self.transport = transport

    async def _fetch_page(self, client: httpx.AsyncClient, url: str) -> str:
        try:
            response = await client.get(url)
            response.raise_for_status()
            return clean_html(response.text)
        except httpx.HTTPError as e:
            logger.warning(f"Error fetching {url}: {type(e).__name__} {str(e)}")
            return ""

    async def fetch_pages(self) -> Dict[str, str]:
        """Fetch every page concurrently; failed pages map to an empty string"""
        async with httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            transport=self.transport
        ) as client:
            texts = await asyncio.gather(*(self._fetch_page(client, url) for url in self.urls))
        return dict(zip(self.urls, texts))

    async def get_context(self) -> str:
        """Website context, served from cache for 24 hours after a successful fetch"""
        cached = self.cache.get(SITE_CONTEXT_KEY)
        if cached is not None:
            return cached

        pages = await self.fetch_pages()
        sections = [
            f"**{url}:**\n{text[:PAGE_CHAR_LIMIT] or SITE_CONTEXT_UNAVAILABLE}"
            for url, text in pages.items()
        ]
        context = "\n\n".join(sections) or SITE_CONTEXT_UNAVAILABLE

        if any(pages.values()):
            self.cache.set(SITE_CONTEXT_KEY, context)
        else:
            logger.warning("No website pages could be fetched; using static context only")
        return context


class SupportChatService:
    """Answers platform questions (fees, series, contact) from site context"""

    def __init__(
        self,
        client: Optional[AsyncOpenAI],
        site_context: SiteContextService,
        model: Optional[str] = None,
        history_limit: Optional[int] = None
    ):
        self.client = client
        self.site_context = site_context
        self.model = model or settings.OPENAI_MODEL
        self.history_limit = history_limit if history_limit is not None else settings.SUPPORT_HISTORY_LIMIT

    def _system_prompt(self, site_context: str) -> str:
        static_context = SUPPORT_STATIC_CONTEXT.format(
            platform=settings.PLATFORM_NAME,
            support_phone=settings.SUPPORT_PHONE
        )
        return SUPPORT_SYSTEM_PROMPT.format(
            platform=settings.PLATFORM_NAME,
            static_context=static_context,
            site_context=site_context,
            support_phone=settings.SUPPORT_PHONE
        )

    def _recent_history(self, history: Sequence[Dict[str, str]]) -> List[Dict[str, str]]:
        turns = [{"role": t["role"], "content": t["content"]} for t in history]
        # A conversation must open with the user
        while turns and turns[0]["role"] != "user":
            turns.pop(0)
        return turns[-self.history_limit:] if self.history_limit else []

    async def reply(self, message: str, history: Sequence[Dict[str, str]] = ()) -> str:
        if not self.client:
            raise InternalError("Support chat is not configured")

        site_context = await self.site_context.get_context()
        messages = [{"role": "system", "content": self._system_prompt(site_context)}]
        messages.extend(self._recent_history(history))
        messages.append({"role": "user", "content": message})

        response = await self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=0.5,
            max_tokens=800
        )
        return (response.choices[0].message.content or "").strip()
