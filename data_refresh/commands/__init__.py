"""Command modules registered on the data-refresh CLI."""
