"""France Travail offer ingestion and AI enrichment for a Google Sheets workbook."""

__version__ = "0.1.0"
