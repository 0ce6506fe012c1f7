"""Prompting package.

This package contains deterministic system-prompt construction used by the
core routing layer. It does not perform routing, safety checks or model
invocation.
"""
