"""Tours API: CRUD and reports over a MongoDB tours collection."""

__version__ = "1.0.0"
