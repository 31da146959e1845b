"""Core configuration, models and exceptions."""
