"""voyages: collaborative itinerary versioning and booking lifecycle."""

__version__ = "0.1.0"
