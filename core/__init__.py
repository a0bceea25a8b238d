"""
Core package: error taxonomy, retry policy, AI request executor and event bus
"""
