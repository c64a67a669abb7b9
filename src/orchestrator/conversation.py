"""Per-request conversation state for the orchestrator.

The orchestrator is stateless across requests: callers send the full
history every time. A Conversation holds the turns of a single
orchestration run, starting from the system prompt and the caller's
turns and growing with every assistant and tool turn.
"""

from typing import Optional

from shared.logging import get_logger
from shared.models import ConversationMessage, ToolCall

logger = get_logger(__name__)


class Conversation:
    """
    Ordered turn buffer for one orchestration run.

    Responsibilities:
    - Seed the conversation with the system prompt and caller turns
    - Append assistant and tool turns in order
    - Optionally cap the caller history (system and latest user turn kept)
    """

    def __init__(
        self,
        system_prompt: str,
        messages: list[ConversationMessage],
        max_length: Optional[int] = None
    ) -> None:
        """
        Initialize the conversation.

        Args:
            system_prompt: System prompt placed before all other turns
            messages: Caller-supplied turns, copied and never mutated
            max_length: Optional cap on the caller-supplied history,
                applied once here; turns added later are never pruned
        """
        self.max_length = max_length
        self._system = ConversationMessage(role="system", content=system_prompt)
        self._messages: list[ConversationMessage] = self._cap_history(
            [m.model_copy() for m in messages]
        )

    def _cap_history(self, messages: list[ConversationMessage]) -> list[ConversationMessage]:
        if self.max_length is None:
            return messages

        # The system turn counts towards the limit
        start = max(len(messages) - max(self.max_length - 1, 0), 0)

        # A tool turn must follow the assistant turn that requested it
        while start < len(messages) and messages[start].role == "tool":
            start += 1

        # The latest user turn is the question being answered
        last_user = max(
            (i for i, m in enumerate(messages) if m.role == "user"),
            default=None
        )
        if last_user is not None and last_user < start:
            start = last_user

        if start:
            logger.debug("Conversation history capped", dropped=start)
        return messages[start:]

    def add_message(self, message: ConversationMessage) -> ConversationMessage:
        """Append a turn to the conversation."""
        self._messages.append(message)
        return message

    def add_assistant_message(
        self,
        content: str,
        tool_calls: Optional[list[ToolCall]] = None
    ) -> ConversationMessage:
        """Add an assistant turn, with the tool calls it requested."""
        return self.add_message(ConversationMessage(
            role="assistant",
            content=content,
            tool_calls=tool_calls
        ))

    def add_tool_result(
        self,
        tool_call_id: str,
        tool_name: str,
        content: str
    ) -> ConversationMessage:
        """Add a tool turn correlated with the requesting tool call."""
        return self.add_message(ConversationMessage(
            role="tool",
            content=content,
            tool_call_id=tool_call_id,
            name=tool_name
        ))

    def messages(self) -> list[ConversationMessage]:
        """Return all turns, system turn first."""
        return [self._system, *self._messages]

    def __len__(self) -> int:
        return len(self._messages) + 1
