"""Shared helpers: errors, logging, configuration and retries."""
