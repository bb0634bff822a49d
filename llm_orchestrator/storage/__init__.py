"""
SQLite reference adapters for the usage and prompt repositories.
"""
