"""SafeVenue command-line interface."""
