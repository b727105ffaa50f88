"""
Unit tests for candidate retrievers and their providers.
"""
