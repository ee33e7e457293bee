"""Presentation helpers for streamed assistant text."""

from codr.render.fences import (
    CODE,
    PROSE,
    FenceSplitter,
    Segment,
    resegment,
    resegment_turn,
    split_text,
)

__all__ = ["CODE", "PROSE", "FenceSplitter", "Segment", "resegment", "resegment_turn", "split_text"]
