"""
GATHERLY - Command Line Interface

Entry point for serving and inspecting the server.
"""
from cli.main import app, main

__all__ = ["app", "main"]
