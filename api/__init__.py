"""
API layer package
"""
