"""Dump the history of a remote Subversion repository into a dump file."""

__version__ = "0.1.0"
