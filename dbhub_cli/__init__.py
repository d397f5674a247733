"""DBHub CLI - command line client for the DBHub Content API."""

__version__ = "0.1.0"
