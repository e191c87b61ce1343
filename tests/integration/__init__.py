"""Integration tests that drive the nodekb CLI in a subprocess."""
