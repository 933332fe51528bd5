"""Parse OCR receipt text and populate branch sales-report workbooks."""

__version__ = "0.3.0"
