"""HTTP surface of the Replivity cache layer."""
