"""Domain layer: models, errors and scheduling services."""
