"""Domain layer - storage engines, database registry and sessions."""
