"""tdcli - Todoist command line client with a local sync cache."""

__version__ = "0.1.0"
