"""ScanOrder: price-list import, barcode resolution and order cart."""

__version__ = "1.0.0"
