"""Action interpreter, change applier, history, and command dispatch."""
