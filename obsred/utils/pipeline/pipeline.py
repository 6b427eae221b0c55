"""
Orchestration of all reduction stages for the frames of an observation.

Offered frames are stored in the directory tree of their camera and, depending on their kind, reduced right away:
darks and flats are combined into master frames, on-source frames are calibrated with those masters and solved
astrometrically. Reduced on-source frames can then be stacked, and stacked frames averaged.

All methods run synchronously and are not thread-safe; callers must serialize them, see
:class:`~obsred.modules.ObservationManager`.
"""
from __future__ import annotations

import logging
import os
from typing import Any, Optional, List

import numpy as np
import pandas as pd
from astroplan import Observer
from astropy.io import fits

from obsred.images.frame import Frame
from obsred.images.processors.astrometry import Astrometry, solve_data
from obsred.utils.enums import ImageID, ReductionStatus, is_calibration, reduced_label
from obsred.utils.exceptions import ConfigurationError, MissingCalibrationError, MixedWcsError
from obsred.utils.fits import has_wcs, read_header
from obsred.utils.pipeline.arithmetic import subtract
from obsred.utils.pipeline.combiner import FrameCombiner, remove_exposure_keys
from obsred.utils.pipeline.config import PipelineConfig
from obsred.utils.pipeline.directory import CameraDirectory, frame_signature, source_id, SUBDIRECTORIES
from obsred.utils.pipeline.registration import Registration, ProgressCallback
from obsred.utils.time import Time

log = logging.getLogger(__name__)


"""Maximum number of cameras."""
MAX_CAMERAS = 2


class ReductionPipeline:
    """Stores offered frames and runs the reduction stages on them."""

    __module__ = "obsred.utils.pipeline"

    def __init__(
        self,
        working_dir: str,
        observation: Optional[str] = None,
        config: Optional[PipelineConfig] = None,
        astrometry: Optional[Astrometry] = None,
        cameras: int = 1,
        reduce_enabled: bool = True,
        auto_reduce_on: bool = True,
        observer: Optional[Observer] = None,
        progress: Optional[ProgressCallback] = None,
    ):
        """Creates a new pipeline.

        Args:
            working_dir: Existing directory that all observations are stored in.
            observation: Name of the observation, defaults to the current night as YYYYMMDD.
            config: Pipeline settings, defaults are used if not given.
            astrometry: Processor for solving reduced on-source frames, none for no solving.
            cameras: Number of cameras, at most two.
            reduce_enabled: Whether to reduce frames when they are offered.
            auto_reduce_on: Whether to reduce on-source frames right when they are offered.
            observer: Observer for determining the current night.
            progress: Callback for progress of registrations.

        Raises:
            ConfigurationError: If the working directory does not exist or too many cameras are requested.
        """
        if cameras < 1 or cameras > MAX_CAMERAS:
            raise ConfigurationError("Only 1 to %d cameras are supported, got %d." % (MAX_CAMERAS, cameras))
        if not working_dir or not os.path.isdir(working_dir):
            raise ConfigurationError('Working directory "%s" does not exist.' % working_dir)

        # name of observation
        if observation is None:
            now = Time.now()
            night = now.datetime.date() if observer is None else now.night_obs(observer)
            observation = night.strftime("%Y%m%d")
        log.info("Storing frames of observation %s in %s.", observation, working_dir)

        self.working_dir = working_dir
        self.observation = observation
        self.reduce_enabled = reduce_enabled
        self.auto_reduce_on = auto_reduce_on
        self._astrometry = astrometry
        self._progress = progress
        self._directories = [CameraDirectory(working_dir, observation, c) for c in range(cameras)]
        self._status: dict[str, ReductionStatus] = {}
        self._enabled: dict[str, bool] = {}
        self.last_frame: Optional[Frame] = None
        self.errors: List[str] = []

        # config
        self._config = PipelineConfig()
        self.set_config(PipelineConfig() if config is None else config)

    @property
    def config(self) -> PipelineConfig:
        """Current pipeline settings."""
        return self._config

    def set_config(self, config: PipelineConfig) -> None:
        """Set new pipeline settings, which are also passed on to the astrometry."""
        self._config = config
        if self._astrometry is not None:
            self._astrometry.apply_config(config)

    @property
    def cameras(self) -> int:
        return len(self._directories)

    def directory(self, camera: int = 0) -> CameraDirectory:
        """Returns the directory tree of the given camera.

        Raises:
            ConfigurationError: If camera does not exist.
        """
        if camera < 0 or camera >= len(self._directories):
            raise ConfigurationError("Camera %d does not exist." % camera)
        return self._directories[camera]

    def status(self, filename: str) -> ReductionStatus:
        """Reduction status of a stored file, NOT_REDUCED for unknown files."""
        return self._status.get(os.path.abspath(filename), ReductionStatus.NOT_REDUCED)

    def enabled(self, filename: str) -> bool:
        """Whether a file takes part in combinations, stacks and averages."""
        return self._enabled.get(os.path.abspath(filename), True)

    def set_enabled(self, filename: str, enabled: bool) -> None:
        """Enable or disable a stored file."""
        self._enabled[os.path.abspath(filename)] = enabled

    def _set_status(self, filename: str, status: ReductionStatus) -> None:
        self._status[os.path.abspath(filename)] = status

    def table(self) -> pd.DataFrame:
        """Overview of all stored files with their kind, camera, status and enabled flag."""
        rows = []
        for directory in self._directories:
            for image_id in [ImageID.DARK, ImageID.FLAT, ImageID.ON_SOURCE, ImageID.REDUCED_ON, ImageID.STACKED,
                             ImageID.AVERAGED]:
                for filename in directory.list(image_id, masters=True):
                    rows.append(
                        {
                            "filename": filename,
                            "camera": directory.camera,
                            "image_id": image_id.value,
                            "status": self.status(filename).value,
                            "enabled": self.enabled(filename),
                        }
                    )
        return pd.DataFrame(rows, columns=["filename", "camera", "image_id", "status", "enabled"])

    def offer_frame(
        self, image_id: ImageID, frame: Frame | str, camera: int = 0, header: Optional[fits.Header] = None
    ) -> Optional[str]:
        """Store a new frame and, if enabled, reduce it.

        Args:
            image_id: Kind of frame.
            frame: Frame or name of a FITS file.
            camera: Index of camera that took the frame.
            header: Additional header cards for the frame.

        Returns:
            Name of stored file or None for test frames.
        """
        directory = self.directory(camera)
        if isinstance(frame, str):
            frame = Frame.from_file(frame)
        else:
            frame = frame.copy()
        if header is not None:
            frame.header.update(header)
        frame.header["IMGID"] = (image_id.value, "Image id")

        # test frames are never stored
        if image_id == ImageID.TEST:
            self.last_frame = frame
            return None
        if image_id not in SUBDIRECTORIES:
            raise ValueError("Frames of type %s cannot be offered." % image_id.value)

        # store
        filename = directory.new_filename(image_id)
        frame.writeto(filename)
        self._set_status(filename, ReductionStatus.NOT_REDUCED)
        self.last_frame = frame
        log.info("Stored %s frame as %s.", image_id.value, filename)

        # reduce
        if self.reduce_enabled and (is_calibration(image_id) or (image_id == ImageID.ON_SOURCE and self.auto_reduce_on)):
            self.reduce(image_id, [filename], camera)
        return filename

    def reduce(self, image_id: ImageID, files: List[str], camera: int = 0) -> List[str]:
        """Run the next reduction stage on the given files.

        Args:
            image_id: Kind of the given files.
            files: Files to reduce.
            camera: Index of camera.

        Returns:
            Names of all written files.

        Raises:
            ConfigurationNotSetError: If darks or flats are combined, but no combination method is set.
            MixedWcsError: If only some of the frames to stack or average are solved.
        """
        if len(files) == 0:
            return []
        if is_calibration(image_id):
            return self._combine(image_id, files, camera)
        elif image_id == ImageID.ON_SOURCE:
            written = []
            for filename in files:
                try:
                    out = self._calibrate(filename, camera)
                except MissingCalibrationError as e:
                    log.warning("Skipping %s: %s", filename, e.message)
                    continue
                except Exception as e:
                    # one broken frame must not stop the batch
                    log.exception("Could not reduce %s: %s", filename, e)
                    self.errors.append("ERROR! %s: %s" % (os.path.basename(filename), e))
                    continue
                written.append(out)
            return written
        elif image_id == ImageID.REDUCED_ON:
            out = self.stack(files[0], camera)
            return [] if out is None else [out]
        elif image_id == ImageID.STACKED:
            out = self.average(files[0], camera)
            return [] if out is None else [out]
        else:
            log.warning("Frames of type %s are not reduced any further.", image_id.value)
            return []

    def _combine(self, image_id: ImageID, files: List[str], camera: int) -> List[str]:
        """Combines all enabled frames of the given kind that share a signature with one of the given files."""
        directory = self.directory(camera)
        signatures = sorted(set(frame_signature(read_header(f)) for f in files))
        frames_df = directory.headers(image_id)
        frames_df = frames_df[frames_df["filename"].map(self.enabled).astype(bool)]
        method = self.config.require_combine_method()
        combiner = FrameCombiner(method, self.config.kappa)

        written = []
        for signature in signatures:
            group = frames_df[frames_df["signature"] == signature]["filename"].tolist()
            if len(group) == 0:
                continue

            # flats need a master dark
            dark = None
            if image_id == ImageID.FLAT:
                dark_file = directory.find_master(ImageID.DARK, signature)
                if dark_file is None:
                    log.warning("No master dark for flats with signature %s, skipping them.", signature)
                    continue
                dark = Frame.from_file(dark_file)

            # combine
            log.info("Combining %d %s frames with signature %s...", len(group), image_id.value.lower(), signature)
            frames = [Frame.from_file(f) for f in group]
            data = combiner(frames, dark=dark, flat_scaling=image_id == ImageID.FLAT)

            # header from first frame
            hdr = frames[0].header.copy()
            if len(frames) > 1:
                remove_exposure_keys(hdr)
            hdr["IMGID"] = (reduced_label(image_id), "Image id")
            hdr["COMBINE"] = (method.name, "Combination method")
            hdr["DATE"] = (Time.now().isot, "File creation date and time")

            # write master
            filename = directory.master_filename(image_id, signature)
            Frame(data=data, header=hdr).writeto(filename)
            log.info("Wrote master %s %s.", image_id.value.lower(), filename)
            self._set_status(filename, ReductionStatus.REDUCED)
            for f in group:
                self._set_status(f, ReductionStatus.REDUCED)
            written.append(filename)
        return written

    def _calibrate(self, filename: str, camera: int) -> str:
        """Subtracts the master dark from an on-source frame, divides it by the master flat and solves it.

        Raises:
            MissingCalibrationError: If no master dark exists for the frame.
        """
        directory = self.directory(camera)
        frame = Frame.from_file(filename)
        signature = frame_signature(frame.header)
        raw = frame.bit_depth == 16

        # dark
        dark_file = directory.find_master(ImageID.DARK, signature)
        if dark_file is None:
            raise MissingCalibrationError("No master dark for signature %s." % signature, signature=signature)
        dark = Frame.from_file(dark_file)
        physical = subtract(frame.data, dark.data, 1, raw) + frame.bzero

        # flat
        flat_file = directory.find_compatible_flat(signature)
        if flat_file is None:
            log.warning("No master flat for signature %s, reducing %s without flat.", signature, filename)
            status = ReductionStatus.REDUCED_WITHOUT_FLAT
        else:
            physical = self._apply_flat(physical, Frame.from_file(flat_file))
            status = ReductionStatus.REDUCED

        # new frame
        hdr = frame.header.copy()
        hdr["IMGID"] = (reduced_label(ImageID.ON_SOURCE), "Image id")
        hdr["DATE"] = (Time.now().isot, "File creation date and time")
        reduced = Frame.from_physical(physical, hdr)

        # solve
        if self._astrometry is not None and not has_wcs(hdr):
            log.info("Solving %s...", filename)
            header, sources = self._astrometry.solve(solve_data(reduced), reduced.header)
            reduced.header = header
            reduced.sources = sources

        # write
        out = str(directory.subdir(ImageID.REDUCED_ON) / os.path.basename(filename))
        reduced.writeto(out)
        log.info("Wrote reduced frame %s.", out)
        self._set_status(filename, status)
        return out

    @staticmethod
    def _apply_flat(physical: Any, flat: Frame) -> Any:
        """Divides physical data by the flat normalized to its mean, plane by plane."""
        flat_physical = flat.physical.astype(float)
        out = np.array(physical, dtype=np.int64)
        for p in range(out.shape[0]):
            f = flat_physical[min(p, flat_physical.shape[0] - 1)]
            norm = f / np.mean(f)
            divided = np.divide(out[p], norm, out=out[p].astype(float), where=f != 0)
            out[p] = np.trunc(0.5 + divided).astype(np.int64)
            # pixels without flat value stay unchanged
            out[p] = np.where(f != 0, out[p], physical[p])
        return out

    def stack(self, filename: str, camera: int = 0) -> Optional[str]:
        """Stacks all enabled reduced frames of the same target as the given one, that have not been stacked yet.

        Args:
            filename: Reduced frame, whose header is used for the output.
            camera: Index of camera.

        Returns:
            Name of stacked file or None, if nothing to stack.

        Raises:
            MixedWcsError: If only some of the frames are solved.
        """
        return self._register(filename, camera, ImageID.REDUCED_ON)

    def average(self, filename: str, camera: int = 0) -> Optional[str]:
        """Averages all enabled stacked frames of the same target as the given one, that have not been averaged yet.

        Args:
            filename: Stacked frame, whose header is used for the output.
            camera: Index of camera.

        Returns:
            Name of averaged file or None, if nothing to average.

        Raises:
            MixedWcsError: If only some of the frames are solved.
            ConfigurationNotSetError: If samples should be combined like darks, but no method is set.
        """
        return self._register(filename, camera, ImageID.STACKED)

    def _register(self, filename: str, camera: int, image_id: ImageID) -> Optional[str]:
        directory = self.directory(camera)
        output_id = ImageID.STACKED if image_id == ImageID.REDUCED_ON else ImageID.AVERAGED
        verb = "stack" if output_id == ImageID.STACKED else "average"

        # candidates with same target
        target = source_id(read_header(filename))
        candidates = directory.headers(image_id)
        candidates = candidates[candidates["source_id"] == target]
        files = [f for f in candidates["filename"] if self.enabled(f)]
        if len(files) == 0:
            log.warning("There are no files to %s.", verb)
            return None

        # remove files that already went into an output
        outputs = directory.headers(output_id)
        consumed = set()
        for f, names in zip(outputs["filename"], outputs["consumed"]):
            if self.enabled(f):
                consumed.update(names)
        files = [f for f in files if os.path.basename(f) not in consumed]
        if len(files) == 0:
            log.info("There are no new files to %s.", verb)
            return None
        if len(files) == 1:
            log.info("Only 1 image to %s.", verb)

        # offered file defines the output
        ref = os.path.abspath(filename)
        files.sort(key=lambda f: os.path.abspath(f) != ref)
        frames = [Frame.from_file(f) for f in files]

        # register
        registration = Registration(self.config, self._progress)
        try:
            frame = registration.stack(frames) if output_id == ImageID.STACKED else registration.average(frames)
        except MixedWcsError as e:
            log.error("Could not %s frames: %s", verb, e.message)
            raise

        # write
        out = directory.new_filename(output_id)
        frame.writeto(out)
        log.info("Wrote %s frame %s from %d files.", output_id.value.lower(), out, len(files))
        for f in files:
            self._set_status(f, ReductionStatus.REDUCED)
        return out


__all__ = ["ReductionPipeline", "MAX_CAMERAS"]
