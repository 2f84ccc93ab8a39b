"""
Inspection Sync - offline change queue for cleaning inspections
"""

__version__ = "1.0.0"
