"""HTTP surface for sitebox."""
