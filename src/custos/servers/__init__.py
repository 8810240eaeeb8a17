"""HTTP endpoints driving a session controller."""
