from __future__ import annotations

import logging

from groq import Groq

from .config import DEFAULT_LLM_CONFIG, LLMConfig

logger = logging.getLogger(__name__)

REVIEW_SEPARATOR = "@"

SUMMARY_ERROR_MESSAGE = "Error summarizing reviews."


def build_summary_prompt(review_texts: list[str]) -> str:
    # A separator inside a review text is passed through unchanged
    joined = REVIEW_SEPARATOR.join(review_texts)
    return (
        "Based on the following restaurant reviews, where each review is "
        f"separated by a '{REVIEW_SEPARATOR}' character, create a concise, "
        "one-sentence summary of what people think of the restaurant.\n\n"
        f"Here are the reviews: {joined}"
    )


def summarize_reviews(
    review_texts: list[str],
    config: LLMConfig = DEFAULT_LLM_CONFIG,
) -> str | None:
    """
    Ask the Groq LLM for a one-sentence summary of the given reviews.

    Returns ``None`` when the LLM is disabled, there is nothing to summarize,
    or the call fails for any reason (timeout, API error, empty answer).
    """
    if not config.enabled or not config.api_key:
        return None

    texts = [t for t in review_texts if t and t.strip()]
    if not texts:
        return None

    try:
        client = Groq(api_key=config.api_key, timeout=config.timeout)
        response = client.chat.completions.create(
            model=config.model,
            messages=[
                {"role": "system", "content": config.system_prompt},
                {"role": "user", "content": build_summary_prompt(texts)},
            ],
            max_tokens=config.max_tokens,
            temperature=config.temperature,
        )
        content = (response.choices[0].message.content or "").strip()
        if not content:
            raise ValueError("Groq returned an empty summary")
        return content

    except Exception:
        logger.warning("Groq summary call failed", exc_info=True)
        return None
