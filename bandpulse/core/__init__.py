"""
Core - Application configuration, error types and adapters.
"""
