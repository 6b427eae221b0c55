"""
Astrometry
----------
"""

from .astrometry import Astrometry, solve_data
from .triangles import Triangle, TriangleMatcher, is_similar
from .plate import PlateSolution, fit_with_rejection
from .photometry import PhotometricSolution, solve_photometry
from .triangle import TriangleAstrometry

__all__ = [
    "Astrometry",
    "solve_data",
    "Triangle",
    "TriangleMatcher",
    "is_similar",
    "PlateSolution",
    "fit_with_rejection",
    "PhotometricSolution",
    "solve_photometry",
    "TriangleAstrometry",
]
