"""
Image preprocessing and quality analysis for identity-document photos.
"""

__version__ = "1.0.0"
