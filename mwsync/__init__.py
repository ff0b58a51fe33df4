"""Poll-based replication of MediaWiki page changes from a source wiki to a target wiki."""

__version__ = "0.1.0"
