"""
Core views package for the session security engine.
"""
