"""
A module is the long-running unit of *obsred*, started from a YAML configuration file that maps directly to the
constructor of the module plus an additional entry ``class`` with the full reference to its class::

    class: obsred.modules.ObservationManager
    working_dir: /data/observations
    pipeline:
        combine_method: MEDIAN

Parameters that accept an object also accept a dict with another ``class`` entry, e.g. the star catalog of an
astrometry processor.
"""
__title__ = "Modules"

from .module import Module
from .observationmanager import ObservationManager

__all__ = ["Module", "ObservationManager"]
