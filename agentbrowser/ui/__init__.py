"""Command-line surface: typer entry point and terminal output."""
