from pydantic import BaseModel

from shared.clients.rag.models.Query import VectorMatch


class ScrollResult(BaseModel):
    """Structured output of a single scroll page or a fully-collected scroll.

    Attributes:
        matches:          Records returned by the scroll.
        next_page_offset: Cursor for the next page, or None when all pages
                          have been consumed. Always None on results returned
                          by do_fetch_all().
    """

    matches: list[VectorMatch]
    next_page_offset: str | None = None
