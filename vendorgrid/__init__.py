"""vendorgrid - Scorecard editor for the vendor/retailer marketing portal."""

__version__ = "0.1.0"
