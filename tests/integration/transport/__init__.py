"""Integration tests for the WebSocket transport."""
