"""Chat titles: ask the project's default model, then clean up what it returns."""
import logging
import re

from modelhub.llm.base import ChatMessage, LLMProvider

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 80
DEFAULT_TITLE = "New chat"

TITLE_SYSTEM_PROMPT = f"""You are a chat title generator. Your ONLY job is to create a short title.

RULES:
- Output ONLY the title text, nothing else
- Maximum {MAX_TITLE_LENGTH} characters
- No explanations, no answers to the user's question
- No quotes, colons, or special punctuation
- Summarize the TOPIC, don't answer it
- Use sentence case (capitalize first word only)

EXAMPLES:
User: "Are there any performance issues with my database?"
Title: Database performance check

User: "How do I optimize slow queries in PostgreSQL?"
Title: PostgreSQL slow query optimization

User: "What's causing high CPU usage on my RDS instance?"
Title: High CPU usage on RDS

User: "Help me tune autovacuum settings"
Title: Autovacuum settings tuning"""

_EDGE_QUOTE = re.compile(r"^[\"']|[\"']$")
_TITLE_LABEL = re.compile(r"^Title:\s*", re.IGNORECASE)
_SENTENCE_END = re.compile(r"[.!?\n]")


def _collapse(text: str) -> str:
    return " ".join(text.split())


def fallback_title(text: str) -> str:
    """The message itself, cut at a word boundary when it is too long."""
    cleaned = _collapse(text)
    if len(cleaned) <= MAX_TITLE_LENGTH:
        return cleaned
    truncated = cleaned[: MAX_TITLE_LENGTH - 3]
    last_space = truncated.rfind(" ")
    if last_space > MAX_TITLE_LENGTH // 2:
        return truncated[:last_space] + "..."
    return truncated + "..."


def clean_title(title: str, fallback_text: str) -> str:
    cleaned = _EDGE_QUOTE.sub("", title)
    cleaned = _TITLE_LABEL.sub("", cleaned)
    cleaned = _collapse(cleaned)
    if len(cleaned) > MAX_TITLE_LENGTH:
        first_sentence = _SENTENCE_END.split(cleaned)[0].strip()
        if 10 <= len(first_sentence) <= MAX_TITLE_LENGTH:
            cleaned = first_sentence
        else:
            cleaned = fallback_title(cleaned)
    if len(cleaned) < 3 or len(cleaned) > MAX_TITLE_LENGTH:
        return fallback_title(fallback_text)
    return cleaned


async def generate_title(provider: LLMProvider, model_id: str, message: str) -> str:
    if not message.strip():
        return DEFAULT_TITLE
    try:
        response = await provider.chat(
            messages=[ChatMessage(role="user", content=message)],
            model_id=model_id,
            system_prompt=TITLE_SYSTEM_PROMPT,
            max_tokens=40,
        )
    except Exception:
        logger.exception("Title generation failed with %s", model_id)
        return fallback_title(message) or DEFAULT_TITLE
    if response.finish_reason == "error":
        logger.warning("Title generation with %s returned an error: %s", model_id, response.content)
        return fallback_title(message) or DEFAULT_TITLE
    return clean_title(response.content, message)
