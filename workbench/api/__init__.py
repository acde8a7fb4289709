"""HTTP surface for workspace observers."""
