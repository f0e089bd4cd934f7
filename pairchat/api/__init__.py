"""HTTP API - presentation surface for the chat session."""
