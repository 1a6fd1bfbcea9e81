"""Domain layer: pipeline stages, events, value objects and errors."""
