"""
Directory layout of an observation.

Every camera gets its own directory below the observation directory, which in turn contains one directory for
each kind of frame::

    <working_dir>/<observation>/camera1/dark/
                                       /flat/
                                       /on/
                                       /reduced/
                                       /stacked/
                                       /averaged/

Master darks and flats are named ``super_<signature>.fits`` and stored beside their raw frames, all other files
are named after the time of their creation in milliseconds.
"""
import glob
import logging
import os
from pathlib import Path
from typing import Optional, List

import pandas as pd
from astropy.io import fits

from obsred.utils.enums import ImageID
from obsred.utils.fits import read_header, indexed_key
from obsred.utils.time import Time

log = logging.getLogger(__name__)


"""Sub directory for each kind of frame."""
SUBDIRECTORIES = {
    ImageID.DARK: "dark",
    ImageID.FLAT: "flat",
    ImageID.ON_SOURCE: "on",
    ImageID.REDUCED_DARK: "dark",
    ImageID.REDUCED_FLAT: "flat",
    ImageID.REDUCED_ON: "reduced",
    ImageID.STACKED: "stacked",
    ImageID.AVERAGED: "averaged",
}

"""Prefix for master frames."""
MASTER_PREFIX = "super_"


def _header_value(value: object) -> str:
    """Header value as written into signatures, booleans in lower case."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value).strip()


def _is_number(value: object) -> bool:
    if isinstance(value, bool):
        return False
    try:
        float(value)  # type: ignore
        return True
    except (TypeError, ValueError):
        return False


def frame_signature(header: fits.Header) -> str:
    """Signature of an exposure, i.e. gain, exposure time and raw mode, as used for naming master frames.

    Args:
        header: Header of frame.

    Returns:
        Signature like ISO800_TIME30.0_RAWtrue.
    """
    time_key = "TIME" if _is_number(header.get("TIME")) else "BULBTIME"
    return "ISO%s_%s%s_RAW%s" % (
        _header_value(header.get("ISO", "")),
        time_key,
        _header_value(header.get(time_key, "")),
        _header_value(header.get("RAW", False)),
    )


def source_id(header: fits.Header) -> str:
    """Identifier for all frames of the same target taken in the same setup, ignoring the exposure time.

    Args:
        header: Header of frame.

    Returns:
        Identifier built from ISO, RAW, FILTER, OBJECT and IMGID.
    """
    return "_".join(key + _header_value(header.get(key, "")) for key in ["ISO", "RAW", "FILTER", "OBJECT", "IMGID"])


def is_master(filename: str) -> bool:
    """Whether the given file is a master dark or flat."""
    return os.path.basename(filename).startswith(MASTER_PREFIX)


class CameraDirectory:
    """Directory tree for the frames of a single camera in one observation."""

    __module__ = "obsred.utils.pipeline"

    def __init__(self, root: str, observation: str, camera: int = 0):
        """Create a new camera directory, nothing is created on disk until needed.

        Args:
            root: Working directory.
            observation: Name of the observation, usually the night.
            camera: Index of the camera, starting at 0.
        """
        self.camera = camera
        self.path = Path(root) / observation / ("camera%d" % (camera + 1))

    def subdir(self, image_id: ImageID, create: bool = True) -> Path:
        """Returns the directory for frames of the given kind.

        Args:
            image_id: Kind of frame.
            create: Whether to create the directory if it does not exist.

        Returns:
            Path to directory.
        """
        if image_id not in SUBDIRECTORIES:
            raise ValueError("Frames of type %s are not stored." % image_id.value)
        path = self.path / SUBDIRECTORIES[image_id]
        if create and not path.exists():
            log.info("Creating directory %s...", path)
            path.mkdir(parents=True, exist_ok=True)
        return path

    def new_filename(self, image_id: ImageID) -> str:
        """Returns the name for a new file of the given kind, which does not exist yet.

        Args:
            image_id: Kind of frame.

        Returns:
            Full path of new file.
        """
        path = self.subdir(image_id)
        while True:
            filename = path / ("%d.fits" % Time.now().millis)
            if not filename.exists():
                return str(filename)

    def master_filename(self, image_id: ImageID, signature: str) -> str:
        """Returns the name of the master dark or flat for the given signature.

        Args:
            image_id: Either DARK or FLAT.
            signature: Signature of exposure.

        Returns:
            Full path of master file, which might not exist.
        """
        return str(self.subdir(image_id, create=False) / ("%s%s.fits" % (MASTER_PREFIX, signature)))

    def find_master(self, image_id: ImageID, signature: str) -> Optional[str]:
        """Returns the master frame for the given signature, if it exists."""
        filename = self.master_filename(image_id, signature)
        return filename if os.path.exists(filename) else None

    def find_compatible_flat(self, signature: str) -> Optional[str]:
        """Returns a master flat with the same gain and raw mode as the given signature, but any exposure time.

        Args:
            signature: Signature of exposure.

        Returns:
            Full path of a compatible master flat or None, if none exists.
        """
        exact = self.find_master(ImageID.FLAT, signature)
        if exact is not None:
            return exact

        # name without exposure time
        name = os.path.basename(self.master_filename(ImageID.FLAT, signature))
        start = name.find("_BULBTIME")
        if start < 0:
            start = name.find("_TIME")
        prefix, suffix = name[: start + 1], name[name.find("_RAW") :]

        # last matching file wins
        compatible = None
        for filename in self.list(ImageID.FLAT, masters=True):
            basename = os.path.basename(filename)
            if is_master(basename) and basename.startswith(prefix) and basename.endswith(suffix):
                compatible = filename
        return compatible

    def list(self, image_id: ImageID, masters: bool = False) -> List[str]:
        """List all FITS files for frames of the given kind, sorted by name.

        Args:
            image_id: Kind of frame.
            masters: Whether to include master frames.

        Returns:
            List of full paths.
        """
        path = self.subdir(image_id, create=False)
        files = sorted(glob.glob(str(path / "*.fits")))
        return files if masters else [f for f in files if not is_master(f)]

    def headers(self, image_id: ImageID) -> pd.DataFrame:
        """Summary of all frames of the given kind, one row per file.

        Args:
            image_id: Kind of frame.

        Returns:
            Table with filename, signature, source id and the names of the files a frame has been stacked or
            averaged from.
        """
        columns: dict[str, list[object]] = {"filename": [], "signature": [], "source_id": [], "consumed": []}
        for filename in self.list(image_id):
            hdr = read_header(filename)
            columns["filename"].append(filename)
            columns["signature"].append(frame_signature(hdr))
            columns["source_id"].append(source_id(hdr))
            columns["consumed"].append(consumed_files(hdr, image_id))
        return pd.DataFrame(columns)


def consumed_files(header: fits.Header, image_id: ImageID = ImageID.STACKED) -> List[str]:
    """Names of all files that a stacked or averaged frame has been created from.

    Args:
        header: Header of stacked or averaged frame.
        image_id: Either STACKED or AVERAGED.

    Returns:
        List of file names without directory.
    """
    count_key, prefix = ("STACKED", "STACK") if image_id == ImageID.STACKED else ("AVERAGED", "AVERAG")
    if count_key not in header:
        return []
    keys = [indexed_key(prefix, i) for i in range(int(header[count_key]))]
    return [str(header[key]) for key in keys if key in header]


__all__ = [
    "CameraDirectory",
    "frame_signature",
    "source_id",
    "consumed_files",
    "is_master",
    "SUBDIRECTORIES",
    "MASTER_PREFIX",
]
