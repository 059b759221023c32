"""Trajmem Tools: MCP servers for trajectories, optimization, and strategies."""
