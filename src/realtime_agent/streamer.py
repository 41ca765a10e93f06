"""Simulated token streaming of a precomputed response."""

import asyncio
import logging
import random
from typing import Awaitable, Callable, List, Optional, Tuple

from . import protocol

logger = logging.getLogger(__name__)

SEPARATOR = " "


def split_into_chunks(text: str) -> List[str]:
    """Split on spaces, keeping the separator on every chunk but the last.

    ``"".join(split_into_chunks(text)) == text`` for any input.
    """
    words = text.split(SEPARATOR)
    return [word + SEPARATOR for word in words[:-1]] + [words[-1]]


async def stream_response(
    emit: Callable[[dict], Awaitable[None]],
    text: str,
    delay_range: Optional[Tuple[float, float]] = (0.05, 0.1),
    interrupt_event: Optional[asyncio.Event] = None,
    message_id: Optional[str] = None,
    sleep=asyncio.sleep,
    rng=random,
) -> int:
    """Emit ``text`` as chunk frames, then one ``listening`` status frame.

    Stops early if ``interrupt_event`` gets set. Returns the number of chunk
    frames sent.
    """
    sent = 0
    for chunk in split_into_chunks(text):
        if interrupt_event is not None and interrupt_event.is_set():
            logger.info(f"SYSTEM: stream interrupted after {sent} chunks")
            break
        await emit(protocol.chunk_frame(chunk, message_id))
        sent += 1
        if delay_range:
            await sleep(rng.uniform(*delay_range))

    await emit(protocol.status_frame("listening", "Listo", message_id))
    return sent
