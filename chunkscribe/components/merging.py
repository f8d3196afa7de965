from __future__ import annotations

from typing import Iterable, Sequence

from chunkscribe.contracts.artifacts import ChunkTranscript


MAX_OVERLAP_WORDS = 20


def merge_texts(texts: Iterable[str]) -> str:
    """Join already ordered chunk texts with single spaces, skipping blank ones."""
    return " ".join(stripped for stripped in (text.strip() for text in texts) if stripped)


def merge_texts_with_overlap(texts: Iterable[str], *, max_overlap_words: int = MAX_OVERLAP_WORDS) -> str:
    """Join ordered texts of overlapping chunks, dropping words a chunk repeats from its predecessor.

    The longest run of words (up to ``max_overlap_words``) that ends the text
    so far and starts the next chunk is kept once. Words are compared without
    case or punctuation.
    """
    merged: list[str] = []
    for text in texts:
        words = text.split()
        if not words:
            continue
        merged.extend(words[_overlap_length(merged, words, max_overlap_words) :])
    return " ".join(merged)


def merge_transcripts(results: Iterable[ChunkTranscript], *, overlapping: bool = False) -> str:
    """Merge chunk transcripts by ascending chunk index, never by arrival order."""
    ordered = [result.text for result in sorted(results, key=lambda result: result.chunk_index)]
    return merge_texts_with_overlap(ordered) if overlapping else merge_texts(ordered)


def _normalize(word: str) -> str:
    return "".join(ch for ch in word.casefold() if ch.isalnum())


def _overlap_length(previous: Sequence[str], following: Sequence[str], limit: int) -> int:
    longest = min(limit, len(previous), len(following))
    tail = [_normalize(word) for word in previous[len(previous) - longest :]]
    head = [_normalize(word) for word in following[:longest]]
    for size in range(longest, 0, -1):
        candidate = head[:size]
        if "".join(candidate) and tail[longest - size :] == candidate:
            return size
    return 0


__all__ = ["MAX_OVERLAP_WORDS", "merge_texts", "merge_texts_with_overlap", "merge_transcripts"]
