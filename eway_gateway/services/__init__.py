"""Backend session, authentication and entity services."""
