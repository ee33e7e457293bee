"""
Split live assistant text into prose and fenced-code segments.

Fragments arrive with arbitrary split points, so a fence marker can be cut
in half.  The splitter only decides on complete lines: a partial line is
held until its newline arrives (or until ``finish()``), which means no
segment ever ends inside a fence marker.  Prose is released a paragraph at
a time, at each blank line; a code block is released when its closing
fence arrives.

A fence is a line that starts with at most three spaces followed by three
backticks.  On an opening line the rest is the language tag; a closing
line has nothing but whitespace after the backticks.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import AsyncIterable, AsyncIterator

from codr.llm.types import StreamEvent, TextDelta, ToolCallsReady

PROSE = "prose"
CODE = "code"

_OPEN_FENCE = re.compile(r"^ {0,3}```([^`]*)$")
_CLOSE_FENCE = re.compile(r"^ {0,3}```\s*$")


@dataclass(frozen=True)
class Segment:
    """
    One run of prose or one code block.

    ``text`` never contains fence markers.  Prose ``text`` drops the line
    breaks around the paragraph.  ``raw`` is the exact slice of the input
    the segment was cut from, so joining ``raw`` over all segments gives
    back the input.
    """

    kind: str
    text: str
    raw: str
    language: str | None = None
    closed: bool = True

    @property
    def is_code(self) -> bool:
        return self.kind == CODE

    @property
    def fenced(self) -> str:
        """
        The source of a code block, fence lines as they were written.

        This is ``raw`` without the line break that ends the closing fence.
        """
        if self.kind == CODE and self.closed:
            return _strip_eol(self.raw)
        return self.raw


def _strip_eol(line: str) -> str:
    if line.endswith("\r\n"):
        return line[:-2]
    if line.endswith("\n"):
        return line[:-1]
    return line


class FenceSplitter:
    """Incremental prose/code splitter; feed fragments, then call ``finish()``."""

    def __init__(self) -> None:
        self._pending = ""
        self._raw: list[str] = []
        self._body: list[str] = []
        self._in_code = False
        self._language: str | None = None

    @property
    def in_code(self) -> bool:
        return self._in_code

    def feed(self, fragment: str) -> list[Segment]:
        """Consume *fragment* and return the segments it completed."""
        self._pending += fragment
        out: list[Segment] = []
        while True:
            nl = self._pending.find("\n")
            if nl < 0:
                break
            line = self._pending[: nl + 1]
            self._pending = self._pending[nl + 1 :]
            seg = self._handle_line(line)
            if seg is not None:
                out.append(seg)
        return out

    def finish(self) -> list[Segment]:
        """
        Flush whatever is left: trailing prose or an unclosed code block.

        The splitter is empty afterwards and can take the next text.
        """
        out: list[Segment] = []
        if self._pending:
            line, self._pending = self._pending, ""
            seg = self._handle_line(line)
            if seg is not None:
                out.append(seg)

        if self._in_code:
            out.append(self._flush_code(closed=False))
        elif self._raw:
            out.append(self._flush_prose())
        return out

    def _handle_line(self, line: str) -> Segment | None:
        bare = _strip_eol(line)

        if not self._in_code:
            match = _OPEN_FENCE.match(bare)
            if match is None:
                self._raw.append(line)
                if not bare.strip() and self._has_prose():
                    return self._flush_prose()
                return None
            prose = self._flush_prose() if self._raw else None
            self._in_code = True
            self._language = match.group(1).strip() or None
            self._raw.append(line)
            return prose

        self._raw.append(line)
        if _CLOSE_FENCE.match(bare):
            return self._flush_code(closed=True)
        self._body.append(line)
        return None

    def _has_prose(self) -> bool:
        return any(part.strip() for part in self._raw)

    def _flush_prose(self) -> Segment:
        raw = "".join(self._raw)
        self._raw = []
        return Segment(kind=PROSE, text=raw.strip("\r\n"), raw=raw)

    def _flush_code(self, closed: bool) -> Segment:
        seg = Segment(
            kind=CODE,
            text="".join(self._body),
            raw="".join(self._raw),
            language=self._language,
            closed=closed,
        )
        self._raw = []
        self._body = []
        self._in_code = False
        self._language = None
        return seg


async def resegment(fragments: AsyncIterable[str]) -> AsyncIterator[Segment]:
    """Re-split an async stream of text fragments into segments."""
    splitter = FenceSplitter()
    async for fragment in fragments:
        for seg in splitter.feed(fragment):
            yield seg
    for seg in splitter.finish():
        yield seg


async def resegment_turn(events: AsyncIterable[StreamEvent]) -> AsyncIterator[Segment]:
    """
    Re-split the text of a streamed turn.

    Each tool round is a separate reply, so its text is flushed when the
    round asks for tools.  A fence left open in one round never takes in
    the next round's text.
    """
    splitter = FenceSplitter()
    async for event in events:
        if isinstance(event, TextDelta):
            segments = splitter.feed(event.text)
        elif isinstance(event, ToolCallsReady):
            segments = splitter.finish()
        else:
            continue
        for seg in segments:
            yield seg
    for seg in splitter.finish():
        yield seg


def split_text(text: str) -> list[Segment]:
    """Segment a complete text in one go."""
    splitter = FenceSplitter()
    return splitter.feed(text) + splitter.finish()
