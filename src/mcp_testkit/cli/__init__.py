"""Command-line interface for mcp-testkit."""
