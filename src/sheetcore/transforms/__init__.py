"""Bulk table transforms: sort, filter, dedupe, text and column operations."""
