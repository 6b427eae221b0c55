"""
*obsred* reduces the frames of a small observatory: it combines darks and flats into master frames, calibrates
on-source exposures, solves them astrometrically against a star catalog and registers them into stacked and
averaged frames.
"""
__title__ = "obsred"
