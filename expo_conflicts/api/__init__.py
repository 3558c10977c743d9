"""HTTP surface for the conflict engine."""
