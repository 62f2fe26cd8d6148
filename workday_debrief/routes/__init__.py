"""HTTP routes for the local UI."""
