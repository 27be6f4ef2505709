"""External services used during filename generation."""
