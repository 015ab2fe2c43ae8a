"""Server-sent event framing and word-level re-streaming."""
import asyncio
import json
from typing import Any, AsyncIterator, Dict, List

DONE_SENTINEL = "data: [DONE]\n\n"


def format_sse(event: Dict[str, Any]) -> str:
    """Frame one event as a `data:` line of a text/event-stream."""
    return f"data: {json.dumps(event, default=str)}\n\n"


def word_chunks(text: str) -> List[str]:
    """Split text into words, each keeping the space that followed it."""
    words = text.split(" ")
    return [w + (" " if i < len(words) - 1 else "") for i, w in enumerate(words)]


async def stream_words(text: str, delay: float = 0.03) -> AsyncIterator[str]:
    """Re-emit an already complete text word by word with a small delay."""
    for i, chunk in enumerate(word_chunks(text)):
        if i and delay > 0:
            await asyncio.sleep(delay)
        yield chunk
