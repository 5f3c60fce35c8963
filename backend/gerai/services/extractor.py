"""Background extraction of durable memory facts from a finished turn."""

import asyncio
import logging
import re
from typing import Optional

from fastapi.concurrency import run_in_threadpool

from pydantic import BaseModel, ValidationError

from gerai.services.llm.base import BaseModelBackend
from gerai.services.store import ChatStore

logger = logging.getLogger(__name__)

EXTRACTION_INSTRUCTIONS = """You maintain a long-term memory about the user.
Read the user's message and extract atomic, durable facts worth remembering in future conversations.

Rules:
- Each fact is one short, self-contained sentence.
- Keep only lasting information: preferences, background, goals, ongoing projects, decisions.
- Skip ephemeral details (today's mood, one-off questions, greetings).
- Never record sensitive data: passwords, API keys, financial account numbers, health identifiers.
- "general" facts are about the user as a whole; "scoped" facts only matter for the current topic.
- If nothing is worth remembering, return empty lists.

Respond with JSON only, no prose:
{"general": ["..."], "scoped": ["..."]}"""

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


class ExtractedFacts(BaseModel):
    general: list[str] = []
    scoped: list[str] = []


def parse_facts(raw: str) -> ExtractedFacts:
    """Parse the backend's JSON answer, tolerating a fenced code block."""
    text = raw.strip()
    match = _FENCE_RE.match(text)
    if match:
        text = match.group(1)
    return ExtractedFacts.model_validate_json(text)


class MemoryExtractor:
    """Runs extraction as detached tasks. Failures are logged, never raised."""

    def __init__(self, store: ChatStore):
        self.store = store
        self._tasks: set[asyncio.Task] = set()

    def spawn(
        self,
        backend: BaseModelBackend,
        credential: Optional[str],
        model: str,
        user_text: str,
        scope_id: Optional[int],
    ) -> asyncio.Task:
        task = asyncio.create_task(self._run(backend, credential, model, user_text, scope_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for every pending extraction to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _run(
        self,
        backend: BaseModelBackend,
        credential: Optional[str],
        model: str,
        user_text: str,
        scope_id: Optional[int],
    ) -> int:
        try:
            return await self.extract(backend, credential, model, user_text, scope_id)
        except Exception:
            logger.exception("Memory extraction failed")
            return 0

    async def extract(
        self,
        backend: BaseModelBackend,
        credential: Optional[str],
        model: str,
        user_text: str,
        scope_id: Optional[int],
    ) -> int:
        """Ask the backend for facts and store them. Returns how many were stored."""
        raw = await backend.complete(credential, user_text, model, EXTRACTION_INSTRUCTIONS)
        try:
            facts = parse_facts(raw)
        except ValidationError:
            logger.warning(f"Memory extraction returned malformed output: {raw[:200]!r}")
            return 0

        stored = 0
        for content in facts.general:
            if content.strip():
                await run_in_threadpool(self.store.upsert_fact, content.strip(), "ai", None)
                stored += 1
        for content in facts.scoped:
            if content.strip():
                await run_in_threadpool(self.store.upsert_fact, content.strip(), "ai", scope_id)
                stored += 1

        logger.info(f"Memory extraction stored {stored} fact(s) for scope {scope_id}")
        return stored
