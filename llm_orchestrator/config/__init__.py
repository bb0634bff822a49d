"""
YAML configuration for budget limits and the model catalog.
"""
