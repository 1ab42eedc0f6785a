"""sheetcore: spreadsheet mutation engine with an agent-first CLI."""

__version__ = "0.1.0"
