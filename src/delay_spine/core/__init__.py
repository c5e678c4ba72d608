"""Core primitives: errors, logging, settings, shared store and scheduling."""
