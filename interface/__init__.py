"""Session state and interactive terminal interface."""
