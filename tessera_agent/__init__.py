"""
Tessera Agent
=============
A multi-turn agent execution engine: a tool-calling loop over a pluggable
completion backend and pluggable tools, with conversations persisted to disk
so they survive restarts.

Bring your own model. The engine only speaks messages, tools and results.
"""

__version__ = "0.1.0"
