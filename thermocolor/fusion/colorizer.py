"""
Streaming Colorizer.

Drives the whole run: for every selected scan position it resolves the image
bindings once, then streams each source point file through

    bindings -> aggregator -> SOCS->PRCS->GLCS -> attribute mapper -> sink

one bounded chunk at a time. The scan is never held in memory and output
order equals input order.

Per-file lifecycle:
    opening input -> opening output -> streaming -> closed

Failing to open or read the input, or to open or write the output, aborts
the file and removes its partial output. The ``on_file_error`` policy decides
whether the run stops (``abort``) or moves on to the next file
(``continue``). Configuration, calibration lookup and raster errors always
stop the run.

Everything that can be checked without opening a point file is checked by
validate() before the first file is opened.
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from functools import partial
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
from tqdm import tqdm

from ..calibration.frames import CalibratedPoint, project_to_global, scanner_to_project
from ..data.las_writer import OUTPUT_POINT_DTYPE, LasHeaderSpec, LasPointSink
from ..data.project import Project, ScanPosition, load_name_map
from ..errors import ConfigurationError, PointSinkError, PointStreamError
from ..sensors.lidar import PointStream
from ..sensors.thermal import RASTER_EXTENSIONS, ThermalImage
from ..utils.config_loader import ConfigLoader
from ..utils.logger import LoggerMixin
from .aggregator import TemperatureAggregator
from .attributes import AttributeMapper, ColorGradient
from .binding import ImageBinding

LAS_SUFFIX = ".las"


class OutputNaming(Enum):
    """How output files are named."""

    SOURCE_FILE = "source_file"
    SCAN_POSITION = "scan_position"


class FileErrorPolicy(Enum):
    """What to do when a point file cannot be read or written."""

    ABORT = "abort"
    CONTINUE = "continue"


@dataclass
class ColorizeConfig:
    """
    Colorization run configuration.

    Attributes:
        image_dir: Directory holding one sub-directory of thermal images per
            scan position.
        output_dir: Directory the LAS files are written to.
        scan_positions: Scan positions to process; empty means all, in
            lexicographic order.
        min_reflectance, max_reflectance: Reflectance mapped to intensity 0
            and 65535.
        min_temperature, max_temperature: Temperature (°C) domain of the
            color gradient.
        rotate: Rasters are stored rotated by 90 degrees.
        sync_to_pps: Only keep points synced to the PPS time source.
        keep_without_thermal: Keep points no image sees (black, NaN
            temperature) instead of dropping them.
        output_naming: Name outputs after source files or scan positions.
        name_map: Image file name/stem -> project image name.
        image_extensions: Raster file suffixes picked up in image directories.
        kelvin_scale, kelvin_offset: Raw raster value -> Kelvin conversion.
        chunk_size: Points per streaming window.
        clamp_intensity: Saturate out-of-range intensities instead of wrapping.
        on_file_error: Policy for point file I/O failures.
        overwrite: Replace existing output files.
    """

    image_dir: Path
    output_dir: Path
    scan_positions: List[str] = field(default_factory=list)
    min_reflectance: float = -5.0
    max_reflectance: float = 20.0
    min_temperature: float = -40.0
    max_temperature: float = -20.0
    rotate: bool = False
    sync_to_pps: bool = False
    keep_without_thermal: bool = False
    output_naming: OutputNaming = OutputNaming.SOURCE_FILE
    name_map: Dict[str, str] = field(default_factory=dict)
    image_extensions: Tuple[str, ...] = RASTER_EXTENSIONS
    kelvin_scale: float = 1.0
    kelvin_offset: float = 0.0
    chunk_size: int = 100_000
    clamp_intensity: bool = False
    on_file_error: FileErrorPolicy = FileErrorPolicy.ABORT
    overwrite: bool = False

    def __post_init__(self):
        self.image_dir = Path(self.image_dir)
        self.output_dir = Path(self.output_dir)
        if isinstance(self.scan_positions, str):
            self.scan_positions = [self.scan_positions]
        self.scan_positions = [str(name) for name in self.scan_positions]
        self.image_extensions = tuple(
            ext.lower() if ext.startswith(".") else f".{ext.lower()}"
            for ext in self.image_extensions
        )
        try:
            self.output_naming = OutputNaming(self.output_naming)
            self.on_file_error = FileErrorPolicy(self.on_file_error)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
        if isinstance(self.name_map, (str, Path)):
            self.name_map = load_name_map(self.name_map)
        self.name_map = dict(self.name_map or {})

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ColorizeConfig":
        """
        Create from a ``colorize`` config section.

        ``name_map`` may be a mapping or the path of a name map file.

        Raises:
            ConfigurationError: On unknown keys, missing directories or
                unknown policy names.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown colorize option(s): {sorted(unknown)}")

        missing = [key for key in ("image_dir", "output_dir") if data.get(key) is None]
        if missing:
            raise ConfigurationError(f"Missing colorize option(s): {missing}")

        return cls(**{key: value for key, value in data.items() if value is not None})

    @classmethod
    def from_file(
        cls,
        path: Union[str, Path],
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "ColorizeConfig":
        """
        Load the ``colorize`` section of a YAML file.

        Args:
            path: Config file path.
            overrides: Values taking precedence over the file; None values
                are ignored.
        """
        loader = ConfigLoader()
        section = loader.load_section(path, "colorize")
        if overrides:
            section = loader.merge(section, overrides)
        return cls.from_dict(section)

    def validate(self) -> None:
        """
        Check value ranges.

        Raises:
            ConfigurationError: If a range is empty or inverted, or a size is
                not positive.
        """
        if self.max_reflectance == self.min_reflectance:
            raise ConfigurationError(
                f"Reflectance range is empty: min == max == {self.min_reflectance}"
            )
        if not self.max_temperature > self.min_temperature:
            raise ConfigurationError(
                f"max_temperature ({self.max_temperature}) must be greater than "
                f"min_temperature ({self.min_temperature})"
            )
        if self.chunk_size <= 0:
            raise ConfigurationError(f"chunk_size must be positive, got {self.chunk_size}")
        if not self.image_extensions:
            raise ConfigurationError("image_extensions must not be empty")
        if self.kelvin_scale == 0:
            raise ConfigurationError("kelvin_scale must not be zero")


@dataclass
class FileSummary:
    """Outcome of colorizing one source point file."""

    source: Path
    destination: Path
    points_read: int = 0
    points_written: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class RunSummary:
    """Outcome of a whole run."""

    files: List[FileSummary] = field(default_factory=list)
    skipped_scan_positions: List[str] = field(default_factory=list)

    @property
    def points_read(self) -> int:
        return sum(f.points_read for f in self.files)

    @property
    def points_written(self) -> int:
        return sum(f.points_written for f in self.files)

    @property
    def failed(self) -> List[FileSummary]:
        return [f for f in self.files if not f.ok]


class StreamingColorizer(LoggerMixin):
    """
    Colorize the point files of a project with its thermal images.

    The point stream, sink and raster factories can be replaced, which keeps
    the pipeline independent of file formats.

    Example:
        >>> project = Project.from_path("project.yaml")
        >>> config = ColorizeConfig(image_dir="thermal", output_dir="las")
        >>> summary = StreamingColorizer(project, config).run()
    """

    def __init__(
        self,
        project: Project,
        config: ColorizeConfig,
        open_stream: Callable[..., PointStream] = PointStream.open,
        open_sink: Callable[..., LasPointSink] = LasPointSink.open,
        load_raster: Optional[Callable[[Path], ThermalImage]] = None,
    ):
        """
        Initialize the colorizer.

        Args:
            project: Loaded project.
            config: Run configuration.
            open_stream: ``(path, sync_to_pps=, chunk_size=) -> PointStream``.
            open_sink: ``(path, header) -> LasPointSink``.
            load_raster: ``path -> ThermalImage``; defaults to
                ThermalImage.from_path with the configured Kelvin conversion.

        Raises:
            ConfigurationError: If the configuration is invalid.
        """
        config.validate()

        self.project = project
        self.config = config
        self.open_stream = open_stream
        self.open_sink = open_sink
        self.load_raster = load_raster or partial(
            ThermalImage.from_path,
            kelvin_scale=config.kelvin_scale,
            kelvin_offset=config.kelvin_offset,
        )

        self.aggregator = TemperatureAggregator()
        self.mapper = AttributeMapper(
            config.min_reflectance,
            config.max_reflectance,
            ColorGradient.two_stop(config.min_temperature, config.max_temperature),
            clamp_intensity=config.clamp_intensity,
        )

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def selected_scan_positions(self) -> List[ScanPosition]:
        """
        Scan positions to process, in run order.

        A name selected more than once is processed once.

        Raises:
            CalibrationLookupError: If a configured scan position is unknown.
        """
        names = dict.fromkeys(self.config.scan_positions or self.project.scan_position_names())
        return [self.project.get_scan_position(name) for name in names]

    def image_paths(self, scan_position: ScanPosition) -> Optional[List[Path]]:
        """
        Thermal rasters of a scan position, sorted by file name.

        Returns:
            List of raster paths, or None if the scan position has no image
            directory.
        """
        directory = self.config.image_dir / scan_position.name
        if not directory.is_dir():
            return None
        return sorted(
            path for path in directory.iterdir()
            if path.is_file() and path.suffix.lower() in self.config.image_extensions
        )

    def output_path_for(self, scan_position: ScanPosition, source: Path) -> Path:
        """Destination LAS file of a source point file."""
        if self.config.output_naming is OutputNaming.SCAN_POSITION:
            stem = scan_position.name
        else:
            stem = Path(source).stem
        return self.config.output_dir / f"{stem}{LAS_SUFFIX}"

    def header_for(self) -> LasHeaderSpec:
        """Output header; offsets sit at the project's global translation."""
        return LasHeaderSpec.from_translation(self.project.pop.translation)

    def validate(self) -> List[ScanPosition]:
        """
        Check the run before any point file is opened.

        Checks naming conflicts, the overwrite guard and that every image
        found on disk resolves to a registered image with known camera and
        mount calibrations. Rasters are not loaded.

        Returns:
            Scan positions that will be processed; positions without an
            image directory are left out unless keep_without_thermal is set.

        Raises:
            ConfigurationError: On naming conflicts or existing outputs.
            CalibrationLookupError: If a scan position, image, camera or mount
                cannot be resolved.
        """
        scan_positions = self.selected_scan_positions()
        destinations: Dict[Path, Path] = {}
        runnable = []

        for scan_position in scan_positions:
            if (self.config.output_naming is OutputNaming.SCAN_POSITION
                    and len(scan_position.point_files) > 1):
                raise ConfigurationError(
                    f"Output naming by scan position, but scan position "
                    f"'{scan_position.name}' has {len(scan_position.point_files)} point files"
                )

            paths = self.image_paths(scan_position)
            if paths is None and not self.config.keep_without_thermal:
                continue

            for path in paths or []:
                record = self.project.image_from_path(scan_position, path, self.config.name_map)
                self.project.camera_calibration(record.camera)
                self.project.mount_calibration(record.mount)

            for source in scan_position.point_files:
                destination = self.output_path_for(scan_position, source)
                if destination in destinations:
                    raise ConfigurationError(
                        f"{source} and {destinations[destination]} would both be written "
                        f"to {destination}"
                    )
                destinations[destination] = source
                if destination.exists() and not self.config.overwrite:
                    raise ConfigurationError(
                        f"Output {destination} already exists (set overwrite to replace it)"
                    )

            runnable.append(scan_position)

        return runnable

    def bindings_for(self, scan_position: ScanPosition) -> Optional[Tuple[ImageBinding, ...]]:
        """
        Resolve and load the image bindings of a scan position.

        Returns:
            Immutable tuple of bindings, or None if the scan position has no
            image directory.

        Raises:
            CalibrationLookupError: If an image or calibration cannot be
                resolved, or a raster does not match its camera.
            ConfigurationError: If a raster cannot be read.
        """
        paths = self.image_paths(scan_position)
        if paths is None:
            return None

        bindings = []
        for path in paths:
            record = self.project.image_from_path(scan_position, path, self.config.name_map)
            try:
                raster = self.load_raster(path)
            except (IOError, ValueError) as exc:
                raise ConfigurationError(f"Unreadable thermal image {path}: {exc}") from exc
            bindings.append(ImageBinding(
                name=record.name,
                camera=self.project.camera_calibration(record.camera),
                mount=self.project.mount_calibration(record.mount),
                cop=record.cop,
                raster=raster,
                rotate=self.config.rotate,
            ))
            self.logger.debug(f"Bound {path.name} to image '{record.name}'")

        return tuple(bindings)

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    def colorize_chunk(
        self,
        chunk: np.ndarray,
        scan_position: ScanPosition,
        bindings: Sequence[ImageBinding],
    ) -> np.ndarray:
        """
        Colorize one chunk of raw points.

        Args:
            chunk: Structured array with dtype ``RAW_POINT_DTYPE``.
            scan_position: Scan position the points were captured at.
            bindings: Image bindings of the scan position.

        Returns:
            Structured array with dtype ``OUTPUT_POINT_DTYPE``, in input order.
        """
        socs = CalibratedPoint.socs(chunk["x"], chunk["y"], chunk["z"])

        if bindings:
            stack = np.stack([binding.sample_temperatures(socs) for binding in bindings])
        else:
            stack = np.empty((0, len(chunk)))
        temperatures = self.aggregator.aggregate_stack(stack)

        reflectance = chunk["reflectance"]
        if not self.config.keep_without_thermal:
            seen = ~np.isnan(temperatures)
            socs = socs.select(seen)
            temperatures = temperatures[seen]
            reflectance = reflectance[seen]

        glcs = project_to_global(scanner_to_project(socs, scan_position.sop), self.project.pop)
        colors = self.mapper.temperature_to_las_color(temperatures)

        output = np.empty(len(temperatures), dtype=OUTPUT_POINT_DTYPE)
        output["x"] = glcs.x
        output["y"] = glcs.y
        output["z"] = glcs.z
        output["intensity"] = self.mapper.reflectance_to_intensity(reflectance)
        output["red"] = colors[:, 0]
        output["green"] = colors[:, 1]
        output["blue"] = colors[:, 2]
        output["temperature"] = temperatures
        return output

    def colorize_file(
        self,
        source: Path,
        destination: Path,
        scan_position: ScanPosition,
        bindings: Sequence[ImageBinding],
    ) -> FileSummary:
        """
        Colorize one source point file into one LAS file.

        Raises:
            PointStreamError: If the input cannot be opened or read.
            PointSinkError: If the output cannot be opened or written; the
                partial output is removed.
        """
        summary = FileSummary(source=Path(source), destination=Path(destination))

        with self.open_stream(
            source, sync_to_pps=self.config.sync_to_pps, chunk_size=self.config.chunk_size
        ) as stream:
            self.logger.info(f"Opened point stream {source}")
            with self.open_sink(destination, self.header_for()) as sink:
                self.logger.info(f"Opened LAS output {destination}")
                for chunk in stream.iter_chunks():
                    output = self.colorize_chunk(chunk, scan_position, bindings)
                    sink.write_chunk(output)
                    summary.points_read += len(chunk)
                    summary.points_written += len(output)

        self.logger.info(
            f"Wrote {summary.points_written} of {summary.points_read} points to {destination}"
        )
        return summary

    def colorize_scan_position(self, scan_position: ScanPosition) -> List[FileSummary]:
        """
        Colorize every point file of a scan position.

        Returns:
            One summary per source file; empty if the position was skipped.
        """
        self.logger.info(f"Colorizing scan position {scan_position.name}")

        bindings = self.bindings_for(scan_position)
        if bindings is None:
            if not self.config.keep_without_thermal:
                self.logger.warning(
                    f"No image directory for scan position {scan_position.name}, skipping"
                )
                return []
            self.logger.warning(
                f"No image directory for scan position {scan_position.name}, "
                f"keeping points without thermal data"
            )
            bindings = ()
        self.logger.info(f"Resolved {len(bindings)} image binding(s)")

        summaries = []
        for source in scan_position.point_files:
            destination = self.output_path_for(scan_position, source)
            try:
                summaries.append(self.colorize_file(source, destination, scan_position, bindings))
            except (PointStreamError, PointSinkError) as exc:
                if self.config.on_file_error is FileErrorPolicy.ABORT:
                    raise
                self.logger.error(f"Failed to colorize {source}: {exc}")
                summaries.append(FileSummary(
                    source=Path(source), destination=destination, error=str(exc),
                ))
        return summaries

    def run(self, progress: bool = False) -> RunSummary:
        """
        Run the colorization.

        Args:
            progress: Show a progress bar over scan positions.

        Returns:
            RunSummary of every processed file.
        """
        runnable = self.validate()
        runnable_names = {scan_position.name for scan_position in runnable}

        summary = RunSummary()
        summary.skipped_scan_positions = [
            scan_position.name for scan_position in self.selected_scan_positions()
            if scan_position.name not in runnable_names
        ]
        for name in summary.skipped_scan_positions:
            self.logger.warning(f"No image directory for scan position {name}, skipping")

        for scan_position in tqdm(runnable, desc="Scan positions", unit="pos", disable=not progress):
            summary.files.extend(self.colorize_scan_position(scan_position))

        self.logger.info(
            f"Done: {len(summary.files)} file(s), {summary.points_written} of "
            f"{summary.points_read} points written, {len(summary.failed)} failed"
        )
        return summary
