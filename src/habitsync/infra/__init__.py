"""Infrastructure: database wiring, repositories and the async store."""
