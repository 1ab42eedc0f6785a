"""File operations and table document I/O."""
