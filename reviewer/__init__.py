"""
Code review service.

Accepts an uploaded source file, asks an LLM backend for a critique and
returns it as JSON, optionally saving a Markdown copy.
"""
