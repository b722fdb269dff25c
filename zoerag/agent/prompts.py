from __future__ import annotations

import re
from typing import Sequence

from zoerag.domain.state import ChatTurn, KnowledgeMatch, SourceCitation

_WHITESPACE_RE = re.compile(r"\s+")

PERSONA = (
    "You are Zoe, a friendly and knowledgeable study-abroad and university admissions assistant. "
    "You help students, parents, agents and university staff with:\n"
    "- Finding universities and programs that match their interests\n"
    "- Understanding application requirements and processes\n"
    "- Learning about scholarship opportunities\n"
    "- Writing strong applications and essays\n"
    "- Visas, accommodation and life while studying abroad"
)

FORMATTING_RULES = (
    "Response rules:\n"
    "- Be conversational, encouraging and specific; give actionable next steps.\n"
    "- Keep answers concise; use short paragraphs or bullet lists.\n"
    "- Use Markdown for lists and emphasis; never wrap the whole answer in a code block.\n"
    "- Never invent deadlines, fees, or admission requirements."
)

NO_KNOWLEDGE_INSTRUCTION = (
    "Knowledge base: no verified source matched this question. "
    "Answer from general best-practice guidance for international students, say clearly that "
    "the answer is not based on a verified source, and invite the user to share more details "
    "(country, program level, intake) so you can be more specific."
)


def _excerpt(text: str, max_chars: int) -> str:
    collapsed = _WHITESPACE_RE.sub(" ", text).strip()
    if len(collapsed) <= max_chars:
        return collapsed
    return collapsed[:max_chars].rstrip() + "..."


def _format_audience(audience: str | Sequence[str] | None) -> str:
    if audience is None:
        return "all"
    if isinstance(audience, str):
        return audience or "all"
    return ", ".join(audience) or "all"


def compose_knowledge_context(matches: Sequence[KnowledgeMatch], *, excerpt_chars: int = 1200) -> str:
    if not matches:
        return NO_KNOWLEDGE_INSTRUCTION

    blocks: list[str] = []
    for idx, match in enumerate(matches, start=1):
        heading = f"Source {idx}"
        if match.title:
            heading += f": {match.title}"
        lines = [
            heading,
            f"Category: {match.category or 'general'}",
            f"Audience: {_format_audience(match.audience)}",
            f"Locale: {match.locale or 'any'}",
        ]
        if match.tags:
            lines.append(f"Tags: {', '.join(match.tags)}")
        lines.append(f"Content: {_excerpt(match.content, excerpt_chars)}")
        blocks.append("\n".join(lines))

    return (
        "Knowledge base: answer ONLY from the numbered sources below. "
        "Cite every fact inline as [Source k] using the source number. "
        "If the sources do not answer the question, say so plainly instead of guessing.\n\n"
        + "\n\n".join(blocks)
    )


def build_citations(matches: Sequence[KnowledgeMatch]) -> list[SourceCitation]:
    return [SourceCitation.from_match(match) for match in matches]


def normalize_role(role: str) -> str:
    # Callers may only speak as user or relay prior assistant turns; never as system.
    return "assistant" if role == "assistant" else "user"


def build_messages(
    knowledge_context: str,
    history: Sequence[ChatTurn],
    *,
    history_turns: int = 20,
) -> list[dict[str, str]]:
    system_prompt = "\n\n".join([PERSONA, FORMATTING_RULES, knowledge_context])
    messages = [{"role": "system", "content": system_prompt}]
    recent = list(history)[-history_turns:] if history_turns > 0 else []
    messages.extend({"role": normalize_role(turn.role), "content": turn.content} for turn in recent)
    return messages
