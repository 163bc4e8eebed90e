"""
LangGraph workflows of the tutoring sessions.

Three graphs share the state (`ChatState`), the dependency context
(`ChatWorkflowContext`) and the node functions:

- retrieval_chain.py: answers questions on a document, rewriting
  follow-up questions into standalone ones before retrieval
- tutoring_chain.py: homework help dialogue driven by the tutoring
  template
- summary_chain.py: one-shot summary of a document

Graphs are compiled by factory functions taking the ConfigSettings
(for the major and minor models) and optional model overrides, used
to inject fake models in tests. Dependencies that vary per session
(the retriever scoped to the document, the homework topic, the
logger) travel in the context passed at stream time and are read by
the nodes through `runtime.context`.

Graphs are consumed as multi-mode streams; see `stream_adapters.py`.
"""
