"""Command-line interface for the verification oracle."""
