"""Integration tests that drive the CLI in-process."""
