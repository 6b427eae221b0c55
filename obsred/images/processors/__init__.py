"""
Frame processors
----------------
"""
