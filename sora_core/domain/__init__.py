"""Domain models and protocols.

- models: LLM wire models and conversation models (Message, WebResult, ...).
- conversation: per-locale storage keys and the
  KeyValueStore protocol.
- exceptions: business error types.
"""
