"""HTTP surface for the report pipeline."""
