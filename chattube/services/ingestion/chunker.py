"""Text chunking with overlapping windows and paragraph boundary preservation.

Used by the web, document and file processors to split extracted text into
windows sized for the embedding model.  Time-based sources never come
through here: their chunk boundaries are transcript segments.

1. **Paragraph-preserving** -- boundaries align with paragraph breaks
   (double newlines) so no chunk starts or ends mid-thought.

2. **Overlapping windows** -- consecutive chunks share up to ``overlap``
   tokens so concepts spanning a boundary are captured in at least one chunk.

A paragraph longer than the budget is split at sentence boundaries using an
abbreviation-aware splitter; a sentence longer than the budget is cut into
fixed word windows.

Token counts everywhere in the pipeline use the whitespace word count as a
proxy (:func:`approximate_token_count`).
"""

from __future__ import annotations

import re

import structlog

logger = structlog.get_logger(logger_name=__name__)

# Periods after these do not end a sentence.
_ABBREVIATIONS = frozenset(
    {
        "Dr",
        "Mr",
        "Mrs",
        "Ms",
        "Prof",
        "Jr",
        "Sr",
        "St",
        "vs",
        "etc",
        "approx",
        "inc",
        "ltd",
        "co",
        "e.g",
        "i.e",
    }
)


def approximate_token_count(text: str) -> int:
    """Whitespace-delimited word count."""
    return len(text.split())


class TextChunker:
    """Splits text into overlapping chunks preserving paragraph boundaries.

    Parameters
    ----------
    chunk_size:
        Target maximum token count per chunk.
    overlap:
        Number of tokens of overlap between consecutive chunks.
    """

    def __init__(self, chunk_size: int = 512, overlap: int = 128) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if not 0 <= overlap < chunk_size:
            raise ValueError("overlap must be in [0, chunk_size)")
        self._chunk_size = chunk_size
        self._overlap = overlap

    def chunk(self, text: str) -> list[str]:
        """Split *text* into overlapping windows.  Blank input returns ``[]``."""
        if not text or not text.strip():
            return []

        paragraphs = self._split_paragraphs(text)
        windows = self._accumulate_chunks(paragraphs)

        logger.debug(
            "chunking_complete",
            num_chunks=len(windows),
            chunk_size=self._chunk_size,
            overlap=self._overlap,
        )
        return windows

    # ------------------------------------------------------------------
    # Paragraph / sentence splitting
    # ------------------------------------------------------------------

    @staticmethod
    def _split_paragraphs(text: str) -> list[str]:
        parts = re.split(r"\n\s*\n", text)
        return [p.strip() for p in parts if p.strip()]

    @staticmethod
    def _split_sentences(text: str) -> list[str]:
        """Split *text* at ``.``, ``!`` or ``?`` followed by whitespace.

        Periods after known abbreviations are masked with ``\\x00`` first
        (same length, so indices still line up with *text*).
        """
        masked = text
        for abbr in _ABBREVIATIONS:
            masked = masked.replace(f"{abbr}.", f"{abbr}\x00")

        sentences: list[str] = []
        last = 0
        for match in re.finditer(r"[.!?](?:\s|$)", masked):
            end = match.end()
            sentence = text[last:end].strip()
            if sentence:
                sentences.append(sentence)
            last = end

        remainder = text[last:].strip()
        if remainder:
            sentences.append(remainder)

        return sentences if sentences else [text]

    # ------------------------------------------------------------------
    # Chunk accumulation
    # ------------------------------------------------------------------

    def _accumulate_chunks(self, paragraphs: list[str]) -> list[str]:
        """Greedily pack paragraphs until the budget is reached, then flush with overlap."""
        chunks: list[str] = []
        current_parts: list[tuple[str, int]] = []
        current_tokens = 0

        for para in paragraphs:
            para_tokens = approximate_token_count(para)

            if para_tokens > self._chunk_size:
                if current_parts:
                    chunks.append("\n\n".join(t for t, _ in current_parts))
                    current_parts = []
                    current_tokens = 0
                chunks.extend(self._chunk_long_paragraph(para))
                continue

            if current_tokens + para_tokens > self._chunk_size and current_parts:
                chunks.append("\n\n".join(t for t, _ in current_parts))
                current_parts, current_tokens = self._build_overlap(current_parts)

            current_parts.append((para, para_tokens))
            current_tokens += para_tokens

        if current_parts:
            chunks.append("\n\n".join(t for t, _ in current_parts))

        return chunks

    def _chunk_long_paragraph(self, paragraph: str) -> list[str]:
        pieces: list[str] = []
        for sentence in self._split_sentences(paragraph):
            if approximate_token_count(sentence) > self._chunk_size:
                pieces.extend(self._word_windows(sentence))
            else:
                pieces.append(sentence)

        chunks: list[str] = []
        current_parts: list[tuple[str, int]] = []
        current_tokens = 0
        for piece in pieces:
            piece_tokens = approximate_token_count(piece)
            if current_tokens + piece_tokens > self._chunk_size and current_parts:
                chunks.append(" ".join(t for t, _ in current_parts))
                current_parts, current_tokens = self._build_overlap(current_parts)
            current_parts.append((piece, piece_tokens))
            current_tokens += piece_tokens

        if current_parts:
            chunks.append(" ".join(t for t, _ in current_parts))
        return chunks

    def _word_windows(self, sentence: str) -> list[str]:
        words = sentence.split()
        step = self._chunk_size - self._overlap
        return [
            " ".join(words[start : start + self._chunk_size])
            for start in range(0, max(len(words) - self._overlap, 1), step)
        ]

    def _build_overlap(self, parts: list[tuple[str, int]]) -> tuple[list[tuple[str, int]], int]:
        """Return tail parts whose combined tokens fit in *overlap*."""
        overlap_parts: list[tuple[str, int]] = []
        overlap_tokens = 0
        for text, tok_count in reversed(parts):
            if overlap_tokens + tok_count > self._overlap:
                break
            overlap_parts.insert(0, (text, tok_count))
            overlap_tokens += tok_count
        return overlap_parts, overlap_tokens
