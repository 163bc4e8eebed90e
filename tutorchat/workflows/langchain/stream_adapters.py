"""
Stream adapters for the LangGraph streams of the tutoring workflows.

A workflow is streamed with stream_mode = ["messages", "values"]
(`stream_graph_state`). This gives a multi-mode stream of (mode,
event) tuples:

- "messages": (BaseMessageChunk, metadata) tuples, the chunks
  generated by the models called inside the nodes
- "values": the complete state after each node

Adapters wrap the stream and transform it:

- `terminal_tier1_adapter`: passes the multi-mode stream through and
  calls a callback with the terminal state when the stream ends
- `tier_1_to_3_adapter`: reduces the multi-mode stream to the text
  of the chunks, optionally restricted to some nodes

A session composes them to forward the text generated by the
`generate` node and to read the answer from the terminal state:

```python
final: dict[str, Any] = {}
raw = stream_graph_state(workflow, initial_state, context)
stream = terminal_tier1_adapter(raw, on_terminal_state=final.update)
async for text in tier_1_to_3_adapter(stream, ["generate"]):
    await sink.emit("chat response start", text)
answer = final["response"]
```
"""

import logging
from typing import Protocol, TypeVar, Any, Literal
from collections.abc import AsyncIterator, Callable, Mapping, Sequence

from pydantic import BaseModel

# StateType for generic adapters - any TypedDict (which is a Mapping)
StateT = TypeVar("StateT", bound=Mapping[str, Any])

# InputStateT and InputContextT for contravariant protocol inputs
InputStateT = TypeVar("InputStateT", contravariant=True)
InputContextT = TypeVar(
    "InputContextT", bound=BaseModel, contravariant=True
)

StreamMode = Literal["messages", "values", "updates"]

# (mode, event) tuples of a multi-mode stream
tier_1_iterator = AsyncIterator[tuple[str, Any]]

# text fragments
tier_3_iterator = AsyncIterator[str]

_default_logger = logging.getLogger(__name__)


class StreamableGraph(Protocol[InputStateT, InputContextT]):
    """The part of a compiled LangGraph graph used to stream it."""

    def astream(
        self,
        input: InputStateT | None,
        *,
        context: InputContextT | None = None,
        stream_mode: StreamMode | Sequence[StreamMode] | None = None,
        **kwargs: Any,
    ) -> AsyncIterator[Any]: ...


def stream_graph_state(
    graph: StreamableGraph[Any, Any],
    initial_state: Mapping[str, Any],
    context: BaseModel,
) -> tier_1_iterator:
    """
    Stream a workflow with "messages" and "values" modes.

    Args:
        graph: Compiled LangGraph workflow
        initial_state: Initial state to start execution
        context: Dependency injection context for the workflow

    Returns:
        AsyncIterator yielding (mode, event) tuples
    """
    return graph.astream(
        initial_state,
        stream_mode=["messages", "values"],
        context=context,
    )


async def terminal_tier1_adapter(
    multi_mode_stream: tier_1_iterator,
    *,
    on_terminal_state: Callable[[StateT], Any] | None = None,
    logger: logging.Logger = _default_logger,
) -> tier_1_iterator:
    """
    Pass the stream through and call on_terminal_state with the last
    "values" event once the stream is exhausted. The callback runs
    before the adapter finishes, and its errors are logged.

    Args:
        multi_mode_stream: Source stream with (mode, event) tuples
        on_terminal_state: Optional callback for terminal state
        logger: receives the errors of the callback

    Yields:
        (mode, event) tuples from the stream
    """

    final_state: StateT | None = None
    async for mode, event in multi_mode_stream:
        if mode == "values":
            final_state = event

        yield (mode, event)

    if on_terminal_state is None or final_state is None:
        return

    try:
        on_terminal_state(final_state)
    except Exception as e:
        logger.error(f"Error in on_terminal_state: {e}")


async def tier_1_to_3_adapter(
    multi_mode_stream: tier_1_iterator,
    source_nodes: list[str] | None = None,
) -> tier_3_iterator:
    """
    Reduce a multi-mode stream to the text of the message chunks.
    The "values" events are consumed but not yielded.

    Args:
        multi_mode_stream: Source stream with (mode, event) tuples
        source_nodes: the nodes whose chunks are streamed. If
            omitted or None, all nodes are streamed.

    Yields:
        strings, in generation order
    """
    async for mode, event in multi_mode_stream:
        if mode != "messages":
            continue
        chunk, metadata = event
        if source_nodes and (
            metadata.get("langgraph_node") not in source_nodes
        ):
            continue
        yield chunk.text
