"""Storage layer for a page-based virtual filesystem: layouts, file handles and a file directory."""

__version__ = "0.1.0"