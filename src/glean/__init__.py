"""glean: reading highlights to blog drafts."""

__version__ = "0.1.0"
