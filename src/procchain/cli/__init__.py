"""Command-line interface for procchain."""
