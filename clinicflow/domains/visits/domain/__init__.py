"""Visits domain layer: entities, value objects, events and pure services."""
