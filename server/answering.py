"""Grounded answers over retrieved archive passages.

Formats the fused chunks as context for a chat completion and returns the
answer with de-duplicated citations. Used by ``scripts/ask_archive.py``.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Sequence

import openai

from config.settings import CompletionConfig
from indexer.fusion import RankedCandidate
from indexer.retrieval import RetrievalEngine

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a fan-made assistant that answers questions using ONLY the provided context, "
    "which consists of passages from Naval Ravikant's public writing at nav.al/archive.\n"
    "- Write in first person (as if speaking in Naval's voice), but DO NOT claim to actually be Naval.\n"
    "- Do not invent personal experiences or details not present in the context.\n"
    "- If the context is only partially relevant, give the best answer you can FROM the context.\n"
    "- If the question cannot be answered directly, say so briefly, then share the closest relevant ideas from the context.\n"
    "- Do NOT say that you couldn't find relevant passages.\n"
    "- Do not use external knowledge.\n"
    "- If a short follow-up question would help, ask ONE follow-up question at the end."
)

FALLBACK_PROMPT = (
    "You are a fan-made assistant loosely inspired by Naval Ravikant's ideas.\n"
    "- Answer the user's question in a concise, thoughtful way in first person.\n"
    "- DO NOT claim to actually be Naval.\n"
    "- DO NOT mention archives, retrieval, or that you couldn't find anything."
)


class CompletionError(Exception):
    """The completion provider failed."""


class CompletionProvider(Protocol):
    async def complete(self, messages: Sequence[Dict[str, str]], temperature: float) -> str: ...


class OpenAICompletionProvider:
    """Chat completions via the OpenAI API."""

    def __init__(self, api_key: str, model: str = "gpt-4o-mini",
                 client: "openai.AsyncOpenAI" = None):
        if not api_key and client is None:
            raise CompletionError("OPENAI_API_KEY is not set")
        self.model = model
        self.client = client or openai.AsyncOpenAI(api_key=api_key)

    async def complete(self, messages: Sequence[Dict[str, str]], temperature: float) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=list(messages),
                temperature=temperature
            )
        except openai.OpenAIError as e:
            raise CompletionError(f"Completion request failed: {e}") from e

        content = response.choices[0].message.content if response.choices else None
        return content or ""

    async def close(self):
        await self.client.close()


@dataclass
class Citation:
    title: str
    url: str


@dataclass
class Answer:
    text: str
    citations: List[Citation] = field(default_factory=list)
    grounded: bool = True


def format_context(chunks: Sequence[RankedCandidate]) -> str:
    blocks = [
        f'Chunk {idx} (from "{c.chunk.title}" - {c.chunk.url}):\n{c.chunk.content}'
        for idx, c in enumerate(chunks, 1)
    ]
    return "\n\n---\n\n".join(blocks)


def collect_citations(chunks: Sequence[RankedCandidate]) -> List[Citation]:
    """One citation per post URL, in rank order."""
    seen: Dict[str, Citation] = {}
    for candidate in chunks:
        if candidate.chunk.url not in seen:
            seen[candidate.chunk.url] = Citation(title=candidate.chunk.title, url=candidate.chunk.url)
    return list(seen.values())


class AnswerComposer:
    """Retrieve, then ask the completion provider to answer from the passages."""

    def __init__(self, engine: RetrievalEngine, completions: CompletionProvider,
                 config: Optional[CompletionConfig] = None):
        self.engine = engine
        self.completions = completions
        self.config = config or CompletionConfig()

    async def answer(self, question: str, k: Optional[int] = None) -> Answer:
        result = await self.engine.retrieve(question, k)

        if result.no_candidates:
            logger.info("No archive passages matched; answering without context")
            text = await self.completions.complete(
                [
                    {"role": "system", "content": FALLBACK_PROMPT},
                    {"role": "user", "content": question},
                ],
                temperature=self.config.fallback_temperature
            )
            return Answer(text=text, citations=[], grounded=False)

        context = format_context(result.chunks)
        text = await self.completions.complete(
            [
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": (
                        f"Context from Naval's archive:\n\n{context}\n\n"
                        f"Question: {question}\n\n"
                        "Answer using only the context above. "
                        "If it's only partially relevant, answer with what it supports."
                    ),
                },
            ],
            temperature=self.config.temperature
        )
        return Answer(text=text, citations=collect_citations(result.chunks))
