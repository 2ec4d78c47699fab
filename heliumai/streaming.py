"""Folding of streamed deltas and tool events into the placeholder message.

Streaming is a progressive preview. The backend's final payload is the
source of truth and overwrites whatever was accumulated, except when that
payload is empty, in which case the accumulated text is kept.
"""

from heliumai.models.conversation import Message, ToolExecution, ToolStatus
from heliumai.models.inference import ToolExecutionEvent


class StreamAccumulator:
    """Accumulates one session's stream into its placeholder message.

    The placeholder starts out with provisional text ("Working..."). The
    first delta replaces that text outright; later deltas append.

    Example:
        >>> placeholder = Message(role=Role.ASSISTANT, content="Working...", is_streaming=True)
        >>> acc = StreamAccumulator(placeholder)
        >>> acc.feed("He")
        'He'
        >>> acc.feed("llo")
        'Hello'
        >>> acc.finalize("Hello!")
        'Hello!'
    """

    def __init__(self, message: Message):
        self.message = message
        self._buffer: list[str] = []
        self._received_text = False

    @property
    def received_content(self) -> bool:
        """Whether any delta or tool event has been applied."""
        return self._received_text or bool(self.message.tool_executions)

    @property
    def text(self) -> str:
        return "".join(self._buffer)

    def feed(self, fragment: str) -> str:
        """Append a delta and return the running text."""
        self._ensure_streaming()
        if not fragment:
            return self.message.content
        self._buffer.append(fragment)
        self._received_text = True
        self.message.content = self.text
        return self.message.content

    def finalize(self, final_text: str | None) -> str:
        """Apply the authoritative final text and return the message content."""
        self._ensure_streaming()
        if final_text:
            self.message.content = final_text
        elif self._received_text:
            self.message.content = self.text
        else:
            self.message.content = ""
        return self.message.content

    def apply_tool_event(self, event: ToolExecutionEvent) -> ToolExecution:
        """Record a tool start, or close the matching executing record."""
        self._ensure_streaming()
        executions = self.message.tool_executions

        if event.is_start:
            execution = ToolExecution(tool_name=event.tool_name, arguments=dict(event.arguments))
            executions.append(execution)
            return execution

        execution = next(
            (e for e in executions if e.tool_name == event.tool_name and e.status == ToolStatus.EXECUTING),
            None,
        )
        if execution is None:
            # End event without a start; record it already finished
            execution = ToolExecution(tool_name=event.tool_name, arguments=dict(event.arguments))
            executions.append(execution)

        if event.error is not None:
            execution.fail(event.error, result=event.result, execution_time_ms=event.execution_time_ms)
        else:
            execution.succeed(event.result, execution_time_ms=event.execution_time_ms)
        return execution

    def merge_tool_executions(self, executions: list[ToolExecution]) -> None:
        """Adopt the backend's final tool records when none were streamed."""
        self._ensure_streaming()
        if executions and not self.message.tool_executions:
            self.message.tool_executions = [e.model_copy() for e in executions]

    def _ensure_streaming(self) -> None:
        if not self.message.is_streaming:
            raise RuntimeError(f"Message {self.message.id} is committed and can no longer change")
