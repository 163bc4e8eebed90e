"""
Conversational memory of a session.

The memory is a list of LangChain messages owned by one session. A
resumed homework session seeds it with the memory window, i.e. the
last stored message records of the conversation put back in
chronological order; every completed exchange then appends its
question and answer.

```python
records = await transcripts.paginate(
    {'student_id': "s1", 'conversation_id': "c1"}, limit=10
)
memory = ConversationMemory()
memory.seed(build_memory_window(records))
```
"""

from collections.abc import Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage

from tutorchat.errors import SessionStateError
from tutorchat.stores.transcript import MessageRecord


def build_memory_window(
    records: Sequence[MessageRecord],
    limit: int | None = None,
) -> list[BaseMessage]:
    """
    Turn message records, newest first as returned by pagination,
    into chronologically ordered messages.

    Args:
        records: message records, newest first
        limit: maximum number of records to use (the newest ones)

    Returns:
        a list of HumanMessage (role 'user') and AIMessage (role
        'assistant') objects, oldest first. Records with any other
        role are dropped.
    """
    if limit is not None:
        records = records[:limit]

    window: list[BaseMessage] = []
    for record in reversed(records):
        match record.log['role']:
            case 'assistant':
                window.append(AIMessage(content=record.log['content']))
            case 'user':
                window.append(
                    HumanMessage(content=record.log['content'])
                )
            case _:
                pass
    return window


class ConversationMemory:
    """Buffer of the messages exchanged in one session. It grows for
    the lifetime of the session."""

    def __init__(self) -> None:
        self._messages: list[BaseMessage] = []
        self._live = False

    @property
    def messages(self) -> list[BaseMessage]:
        return list(self._messages)

    def seed(self, messages: Sequence[BaseMessage]) -> None:
        """Prime the memory with history loaded from the store.

        Raises:
            SessionStateError: if exchanges were already added
        """
        if self._live:
            raise SessionStateError(
                "Memory cannot be seeded after the first exchange"
            )
        self._messages = list(messages)

    def add_exchange(self, question: str, answer: str) -> None:
        self._live = True
        self._messages.append(HumanMessage(content=question))
        self._messages.append(AIMessage(content=answer))

    def clear(self) -> None:
        self._messages = []
        self._live = False
