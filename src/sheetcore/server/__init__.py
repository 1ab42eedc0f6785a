"""stdio server mode."""
