"""Infrastructure layer - Database and repositories."""
