"""SafeVenue services."""
