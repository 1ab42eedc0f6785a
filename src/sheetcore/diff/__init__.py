"""Table comparison."""
