"""Core modules for switchboard."""
