"""toolsmith: download, verify and install versioned developer tools."""

__version__ = "0.1.0"
