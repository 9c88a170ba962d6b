"""Natural-language meeting scheduling service."""
