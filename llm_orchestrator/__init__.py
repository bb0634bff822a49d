"""
LLM orchestration core.

Model routing, budget enforcement, cost estimation and versioned prompt
management for applications that call third-party language models.
"""

__version__ = "0.1.0"
