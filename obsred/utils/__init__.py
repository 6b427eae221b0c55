"""
Utilities shared by the reduction pipeline and the modules running it.
"""
