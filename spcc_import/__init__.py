"""
Bulk import of SPCC plan PDFs: extract, match to facilities, review, apply.
"""

__version__ = "0.1.0"
