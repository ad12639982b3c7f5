"""Pharmacy document intelligence.

Turns photographed or scanned purchase bills and prescriptions into
structured records, combining embedded PDF text, Google Cloud Vision and
Tesseract recognition with heuristic extraction and catalog reconciliation.
"""

__version__ = "1.0.0"
