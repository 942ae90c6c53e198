"""Service layer: artifact lifecycle and delivery."""
