"""Cross-cutting runtime support: structured logging and tracing."""
