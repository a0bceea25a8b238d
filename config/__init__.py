"""
Configuration package: environment constants and logging setup
"""
