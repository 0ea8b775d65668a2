"""REST API for sessions, history and assistant settings."""
