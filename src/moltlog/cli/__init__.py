"""Command-line tools for moltlog."""
