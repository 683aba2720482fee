"""
familytree - Multi-tenant genealogy record keeping service

A REST service for building family trees in Arabic, English and Nobiin,
exchanging them as GEDCOM, and reviewing duplicates, predicted
relationships and crowd-sourced suggestions.
"""

__version__ = "0.1.0"
__author__ = "familytree Contributors"
