"""Command line client for the vessel CBM dashboard service."""
