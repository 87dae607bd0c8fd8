"""Core configuration, logging, errors and shared records."""
