"""Request models for the ride boost API."""
