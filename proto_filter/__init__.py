"""proto-filter: reduce a tree of .proto files to a self-consistent subset."""

__version__ = "0.3.0"
