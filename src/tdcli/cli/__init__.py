"""Command line interface for tdcli."""
