"""Infrastructure layer: configuration, logging, database and Redis services."""
