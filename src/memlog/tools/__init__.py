"""Tool callables exposed to the host agent."""
