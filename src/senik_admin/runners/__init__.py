"""Worker composition and lifecycle."""
