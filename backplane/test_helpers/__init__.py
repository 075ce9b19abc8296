"""
Helpers for testing the operator and code built on it
"""
