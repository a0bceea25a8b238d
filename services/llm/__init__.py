"""
LLM handlers for the AI backend endpoint
"""
