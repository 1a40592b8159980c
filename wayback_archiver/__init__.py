"""
Wayback Archiver: Batch Preservation Tool for the Wayback Machine

A utility for submitting lists of web addresses to the Internet Archive's
Wayback Machine, checking which ones are already preserved, requesting
captures for the rest and confirming them with follow-up lookups.
"""

__version__ = "1.0"
__author__ = "Wayback Archiver Project"
__description__ = "Batch Preservation Tool for the Wayback Machine"
