"""scradio-mcp: MCP tool server for shared SoundCloud listening sessions."""
