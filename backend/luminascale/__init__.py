"""Photo enhancement client, raster editing engine and local API."""

__version__ = "1.0.0"
