"""Command line entrypoint for pylock."""
