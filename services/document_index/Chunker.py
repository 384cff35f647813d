"""Splits extracted document text into bounded, retrievable chunks.

Boundaries are searched in this order: paragraphs (blank lines), sentences
(terminated by ".", "!" or "?"), whitespace inside an over-long sentence and
finally a hard cut. Units are packed greedily, so every chunk is the literal
slice text[start_offset:end_offset] and never longer than max_chars.
"""

import re
from typing import Iterator

from shared.exceptions.IndexExceptions import ValidationError
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import ChunkDescriptor, PageOffset

CHUNK_MAX_CHARS = 4000  # ~1000 tokens at 4 characters per token
MIN_CHUNK_CHARS = 200
FALLBACK_PAGE_NUMBER = 1

_PARAGRAPH_BREAK = re.compile(r"\n[ \t]*\n")
_SENTENCE = re.compile(r"[^.!?]*[.!?]+[\"')\]]*|[^.!?]+$")
_WHITESPACE = (" ", "\n", "\t")

Span = tuple[int, int]


def _trim(text: str, start: int, end: int) -> Span | None:
    while start < end and text[start].isspace():
        start += 1
    while end > start and text[end - 1].isspace():
        end -= 1
    return (start, end) if start < end else None


def _paragraph_spans(text: str) -> Iterator[Span]:
    pos = 0
    for match in _PARAGRAPH_BREAK.finditer(text):
        span = _trim(text, pos, match.start())
        if span:
            yield span
        pos = match.end()
    span = _trim(text, pos, len(text))
    if span:
        yield span


def _hard_cut(text: str, start: int, end: int, max_chars: int) -> Iterator[Span]:
    while end - start > max_chars:
        window_end = start + max_chars
        cut = max(text.rfind(ws, start + 1, window_end + 1) for ws in _WHITESPACE)
        if cut <= start:
            cut = window_end
        span = _trim(text, start, cut)
        if span:
            yield span
        start = cut
        while start < end and text[start].isspace():
            start += 1
    span = _trim(text, start, end)
    if span:
        yield span


def _unit_spans(text: str, max_chars: int) -> Iterator[Span]:
    for p_start, p_end in _paragraph_spans(text):
        if p_end - p_start <= max_chars:
            yield p_start, p_end
            continue
        for match in _SENTENCE.finditer(text, p_start, p_end):
            span = _trim(text, match.start(), match.end())
            if not span:
                continue
            if span[1] - span[0] <= max_chars:
                yield span
            else:
                yield from _hard_cut(text, span[0], span[1], max_chars)


def split_spans(text: str, max_chars: int = CHUNK_MAX_CHARS) -> Iterator[Span]:
    """Yield (start, end) offsets of consecutive chunks of text.

    Args:
        text (str): The full document text.
        max_chars (int): Upper bound of end - start for every span.

    Returns:
        Iterator[Span]: Spans in document order.
    """
    current: list[int] | None = None
    for start, end in _unit_spans(text, max_chars):
        if current is None:
            current = [start, end]
        elif end - current[0] <= max_chars:
            current[1] = end
        else:
            yield current[0], current[1]
            current = [start, end]
    if current is not None:
        yield current[0], current[1]


class Chunker:
    """Turns extracted text plus optional page offsets into ChunkDescriptors."""

    def __init__(self, helper_config: HelperConfig, max_chars: int | None = None) -> None:
        self.logging = helper_config.get_logger()
        self.max_chars = max_chars if max_chars is not None else helper_config.get_int_val(
            "INDEX_CHUNK_MAX_CHARS", default=CHUNK_MAX_CHARS, minimum=MIN_CHUNK_CHARS
        )
        if self.max_chars < 1:
            raise ValidationError(f"Chunk size must be at least 1 character, got {self.max_chars}.")

    def chunk(self, text: str, page_offsets: list[PageOffset] | None = None) -> Iterator[ChunkDescriptor]:
        """Split text into chunks.

        Validation happens on call; the chunks themselves are produced lazily.
        The result only depends on the arguments, so calling again restarts
        the same sequence.

        Args:
            text (str): The extracted document text.
            page_offsets (list[PageOffset] | None): Page boundaries from the extractor.

        Returns:
            Iterator[ChunkDescriptor]: Chunks in document order, chunk_index starting at 0.

        Raises:
            ValidationError: If the text is empty or whitespace only.
        """
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("Cannot index an empty document: the extracted text is empty.")
        return self._iter_chunks(text, list(page_offsets or []))

    def _iter_chunks(self, text: str, pages: list[PageOffset]) -> Iterator[ChunkDescriptor]:
        for chunk_index, (start, end) in enumerate(split_spans(text, self.max_chars)):
            page_number, page_numbers = self._map_pages(start, end, pages)
            yield ChunkDescriptor(
                chunk_index=chunk_index,
                text=text[start:end],
                start_offset=start,
                end_offset=end,
                page_number=page_number,
                page_numbers=page_numbers,
            )

    def _map_pages(self, start: int, end: int, pages: list[PageOffset]) -> tuple[int | None, list[int]]:
        """Find the pages a chunk overlaps (half-open ranges).

        Returns:
            tuple[int | None, list[int]]: The page holding the chunk start and all overlapped pages.
        """
        if not pages:
            return None, []
        overlapping = sorted({page.page_number for page in pages if page.start_index < end and start < page.end_index})
        if not overlapping:
            self.logging.warning(
                "No page found for chunk at offsets %d-%d, assigning page %d.", start, end, FALLBACK_PAGE_NUMBER
            )
            return FALLBACK_PAGE_NUMBER, [FALLBACK_PAGE_NUMBER]
        containing = [page.page_number for page in pages if page.start_index <= start < page.end_index]
        return (containing[0] if containing else overlapping[0]), overlapping
