"""Command-line entry points for carledger."""
