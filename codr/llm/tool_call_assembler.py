"""
Assembles streaming tool-call fragments into complete ``ToolCallRequest``
objects.

Design goals:
  - Accumulate fragments keyed by the provider's ``index`` (fragments with
    no index belong to call 0, which is what serial providers send).
  - Take the name from the first fragment that carries one and
    concatenate ``arguments`` pieces in arrival order.
  - Do *not* parse the arguments.  A half-written or malformed document is
    handed to the tool loop as-is so the failure can be reported back to
    the model.
"""

from __future__ import annotations

from codr.llm.types import ToolCallRequest


class ToolCallAssembler:
    """Buffers tool-call fragments and emits finished ``ToolCallRequest`` objects."""

    def __init__(self) -> None:
        self._buf: dict[int, dict] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def in_progress(self) -> bool:
        """``True`` once at least one fragment has been fed."""
        return bool(self._buf)

    def feed(self, fragment: ToolCallRequest) -> None:
        """Feed a single fragment into the assembler."""
        idx = fragment.index if fragment.index is not None else 0
        buf = self._buf.setdefault(
            idx, {"id": None, "type": None, "name": None, "args": []}
        )

        if fragment.id and not buf["id"]:
            buf["id"] = fragment.id

        if fragment.type and not buf["type"]:
            buf["type"] = fragment.type

        if fragment.name and not buf["name"]:
            buf["name"] = fragment.name

        if fragment.arguments:
            buf["args"].append(fragment.arguments)

    def finish(self) -> list[ToolCallRequest]:
        """
        Finalize every buffered call, in index order, and clear the buffers.

        Calls that never received an id get a synthetic ``call_<index>``.
        """
        calls: list[ToolCallRequest] = []
        for idx in sorted(self._buf):
            buf = self._buf[idx]
            calls.append(
                ToolCallRequest(
                    arguments="".join(buf["args"]),
                    id=buf["id"] or f"call_{idx}",
                    name=(buf["name"] or "").strip(),
                    type=buf["type"] or "function",
                )
            )
        self._buf.clear()
        return calls

    def reset(self) -> None:
        """Discard all accumulated state."""
        self._buf.clear()
