"""Text chunker for the model extraction path.

Strategy: fixed-size contiguous character windows.  There is no overlap and
no snapping to sentence or word boundaries, so every character of the input
lands in exactly one chunk and ``"".join(chunks) == text``.
"""

from __future__ import annotations


def chunk_text(text: str, chunk_size: int = 3500) -> list[str]:
    """Split *text* into windows of at most *chunk_size* characters.

    Args:
        text: The document text to split.
        chunk_size: Maximum number of **characters** per chunk.

    Returns:
        A list of chunks in document order.  Returns ``[]`` for empty input.

    Raises:
        ValueError: If *chunk_size* is not positive.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    return [text[i : i + chunk_size] for i in range(0, len(text), chunk_size)]
