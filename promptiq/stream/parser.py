"""
Incremental Server-Sent Events parser.

Text is fed in arbitrary increments; complete event records are dispatched
to an :class:`SSEEventHandler` as soon as their terminating blank line has
been seen. A malformed record is reported through ``on_error`` and parsing
carries on with the next record.
"""
import re
from dataclasses import dataclass
from typing import Protocol

DONE_SENTINEL = "[DONE]"

_BOM = "\ufeff"

_LINE_END = re.compile(r"\r\n|\r|\n")


@dataclass(frozen=True)
class SSEEvent:
    """One dispatched event record."""

    data: str
    event: str | None = None
    id: str | None = None


class SSEParseError(Exception):
    """A malformed line or record in the event stream."""

    def __init__(
        self,
        message: str,
        kind: str,
        line: str | None = None,
        field: str | None = None,
        value: str | None = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.line = line
        self.field = field
        self.value = value


class SSEEventHandler(Protocol):
    """Receiver for parser output."""

    def on_event(self, event: SSEEvent) -> None: ...

    def on_error(self, error: SSEParseError) -> None: ...


class SSEParser:
    """
    Stateful SSE parser.

    Follows the event-stream grammar: ``field: value`` lines, ``:`` comments,
    a blank line ends a record. ``data`` lines of one record are joined with
    ``\\n``. A record whose data is ``[DONE]`` marks normal termination: it is
    swallowed, :attr:`done` becomes true and anything after it is ignored.
    """

    def __init__(self, handler: SSEEventHandler):
        self._handler = handler
        # Pieces of the current unterminated line.
        self._partial: list[str] = []
        # The previous increment ended in "\r"; a leading "\n" belongs to it.
        self._after_cr = False
        self._started = False
        self._data: list[str] = []
        self._event_type: str | None = None
        self._event_id: str | None = None
        self.last_event_id: str | None = None
        self.retry: int | None = None
        self.done = False

    def feed(self, text: str) -> None:
        """Feed a decoded text increment."""
        if self.done or not text:
            return

        if not self._started:
            self._started = True
            if text.startswith(_BOM):
                text = text[1:]

        if self._after_cr and text.startswith("\n"):
            text = text[1:]
        self._after_cr = False

        # Only the new increment is scanned; earlier pieces are joined once
        # their line is complete.
        start = 0
        for match in _LINE_END.finditer(text):
            self._partial.append(text[start:match.start()])
            line = "".join(self._partial)
            self._partial = []
            start = match.end()
            self._process_line(line)
            if self.done:
                return
            if match.group() == "\r" and start == len(text):
                self._after_cr = True

        if start < len(text):
            self._partial.append(text[start:])

    def close(self) -> None:
        """
        Signal end of stream.

        A record that never received its blank-line terminator is discarded
        and reported.
        """
        if self.done:
            return
        if self._partial:
            self._process_line("".join(self._partial))
            self._partial = []
        if self._data:
            self._handler.on_error(
                SSEParseError(
                    "Stream ended before the event record was terminated",
                    kind="incomplete-event",
                    value="\n".join(self._data),
                )
            )
        self._reset_record()

    def _process_line(self, line: str) -> None:
        if line == "":
            self._dispatch()
            return

        if line.startswith(":"):
            return

        field, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if field == "data":
            self._data.append(value)
        elif field == "event":
            self._event_type = value or None
        elif field == "id":
            if "\0" not in value:
                self._event_id = value
                self.last_event_id = value
        elif field == "retry":
            if value.isdigit():
                self.retry = int(value)
            else:
                self._handler.on_error(
                    SSEParseError(
                        f"Invalid retry value: {value!r}",
                        kind="invalid-retry",
                        line=line,
                        field=field,
                        value=value,
                    )
                )
        else:
            self._handler.on_error(
                SSEParseError(
                    f"Unknown field {field!r}",
                    kind="unknown-field",
                    line=line,
                    field=field,
                    value=value,
                )
            )

    def _dispatch(self) -> None:
        if not self._data:
            self._reset_record()
            return

        data = "\n".join(self._data)
        event = SSEEvent(data=data, event=self._event_type, id=self._event_id)
        self._reset_record()

        if data == DONE_SENTINEL:
            self.done = True
            return

        self._handler.on_event(event)

    def _reset_record(self) -> None:
        self._data = []
        self._event_type = None
        self._event_id = None
