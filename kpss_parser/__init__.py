"""
KPSS Bulletin Parser
====================
Extraction pipeline for ÖSYM public-sector placement bulletins (KPSS).

Architecture:
    - File Classifier: Maps a bulletin filename to its table type and level
    - Text Extractor: Flattens a PDF into page-ordered text
    - Qualification Parser: Recovers (code, description) records
    - Position Parser: Recovers job-position listings
    - Record Merger: Deduplicates qualification codes across files
    - Output: qualifications.json and positions.json for a search layer

Version: 1.0.0
"""

__version__ = "1.0.0"
