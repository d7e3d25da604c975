"""Sinks and destinations shipped with moltlog."""
