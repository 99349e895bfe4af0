"""Domain layer: entities, value objects and boundary payloads."""
