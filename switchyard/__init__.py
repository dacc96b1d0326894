"""
Switchyard: Adaptive Request Router for LLM Backends

An OpenAI-compatible gateway that classifies each chat-completion request,
picks the cheapest backend that is safe for it, falls back across a
candidate chain when providers are unavailable, and retries once against
a stronger backend when a cheap judge scores the answer poorly.
"""

__version__ = "0.2.0"
