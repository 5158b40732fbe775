"""TASWear shopping-app data layer: entities, repositories and view-models."""
