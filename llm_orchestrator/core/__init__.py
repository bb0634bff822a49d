"""
Core modules for the LLM orchestration core.

This package contains the model catalog, the model router, the budget guard,
cost estimation and the error taxonomy shared by every other package.
"""
