"""Core transport, mapping, configuration and lifecycle for moltlog."""
