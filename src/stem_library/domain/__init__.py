"""Domain layer - business logic for the stem library."""
