"""Training coordinator: the one owner of session state.

Parameter changes, annotation changes, live-mode toggles and finished
tiles all arrive as events. The coordinator reacts in order: rebuild the
pipeline, retrain when live prediction is on, install the new model at a
new generation and have the overlays drop everything older.
"""

import logging
import queue
import threading
from typing import TYPE_CHECKING, Callable, Iterable, Optional

from pixtrain.contracts import ConfigurationError, ConsistencyError, ContractViolation
from pixtrain.imaging.classes import PathClass
from pixtrain.imaging.features import FeatureOperator, compose, operator_from_config
from pixtrain.imaging.hierarchy import AnnotationHierarchy, HierarchyEvent
from pixtrain.imaging.resolution import Resolution, add_resolution, default_resolutions, resolution_from_config
from pixtrain.imaging.tiles import TileRequest, TileSource
from pixtrain.overlay.cache import TileCache
from pixtrain.overlay.overlay import ANNOTATIONS_ONLY, WHOLE_IMAGE, FeatureDisplayOverlay, PixelClassificationOverlay
from pixtrain.overlay.render import results_string
from pixtrain.pipeline.events import (
    DISPLAY_PARAMS,
    MODEL_PARAMS,
    AnnotationChanged,
    FeatureDisplayChanged,
    LivePredictionChanged,
    ParamChanged,
    Shutdown,
    TileReady,
    TrainRequested,
)
from pixtrain.training.classifiers import StatModel
from pixtrain.training.model import CLASSIFICATION, PROBABILITY, TrainedModel, export_artifact
from pixtrain.training.preprocessing import FeatureNormalization
from pixtrain.training.samples import assemble, boundary_strategy_from_config, with_thickness
from pixtrain.training.trainer import TrainingOptions, TrainingReport, train

if TYPE_CHECKING:
    from pixtrain.schemas import InternalConfig

__all__ = ['TrainingCoordinator', 'is_relevant_change']

logger = logging.getLogger(__name__)


def is_relevant_change(event: HierarchyEvent) -> bool:
    """Whether a hierarchy change can alter the training data.

    Bulk edits still in progress and measurement-only changes are ignored.
    Otherwise the change must be structural or a reclassification, involve
    a classified object, and touch at least one annotation.
    """
    if event.is_changing or event.is_measurement_only:
        return False
    if not (event.is_structural or event.is_classification or event.changed_objects):
        return False
    if not (event.is_classification or any(o.path_class is not None for o in event.changed_objects)):
        return False
    return any(o.is_annotation for o in event.changed_objects)


class TrainingCoordinator(threading.Thread):
    """Owns the generation counter and every training parameter.

    Events are processed one at a time, either by the coordinator thread
    (``start`` then ``post``) or synchronously with ``handle``. Public
    setters go through the queue while the thread is running.

    Parameters
    ----------
    hierarchy : AnnotationHierarchy
        Read for training data; its change events are listened to.
    source : TileSource
        Image being classified.
    config : InternalConfig
        Initial parameters and overlay settings.
    on_repaint : callable, optional
        Called with the TileRequest of every tile that became available
        for the current generation. Runs on the coordinator thread while
        it is alive, otherwise on the overlay worker that made the tile.
    """

    def __init__(
        self,
        hierarchy: AnnotationHierarchy,
        source: TileSource,
        config: "InternalConfig",
        on_repaint: Optional[Callable[[TileRequest], None]] = None,
    ):
        super().__init__(daemon=True, name="TrainingCoordinator")
        self.hierarchy = hierarchy
        self.source = source
        self.config = config
        self.on_repaint = on_repaint

        self.resolutions = default_resolutions(config.resolution.base_pixel_size, config.resolution.units)
        self.resolution = resolution_from_config(config.resolution)
        if self.resolution.name == "Custom":
            self.resolutions = add_resolution(self.resolutions, self.resolution)
        self.feature_operator: Optional[FeatureOperator] = operator_from_config(
            config.features, source.channel_names, self.resolution
        )
        self.classifier: Optional[StatModel] = StatModel.from_config(config.classifier)
        self.output_type = config.classifier.output_type
        self.boundary_strategy = boundary_strategy_from_config(config.boundary)
        self.normalization = FeatureNormalization.from_config(config.preprocessing)
        self.options = TrainingOptions.from_config(config.training)
        self.tile_size = config.overlay.tile_size
        self.live = config.overlay.live_prediction

        self.cache = TileCache(config.overlay.max_cached_tiles)
        overlay_args = dict(
            tile_size=self.tile_size,
            max_workers=config.overlay.max_workers,
            hierarchy=hierarchy,
            on_tile_ready=self._tile_finished,
        )
        self.overlay = PixelClassificationOverlay(source, self.cache, **overlay_args)
        self.feature_overlay = FeatureDisplayOverlay(source, self.cache, **overlay_args)
        for o in (self.overlay, self.feature_overlay):
            o.set_region(config.overlay.region)
            o.set_opacity(config.overlay.opacity)
            o.set_live(self.live)

        self.generation = 0
        self.stale = True
        self.model: Optional[TrainedModel] = None
        self.report = TrainingReport.empty()
        self.feature_channel: Optional[str] = None
        self.last_error: Optional[Exception] = None

        self._events: queue.Queue = queue.Queue()
        self._stop_event = threading.Event()
        self._closed = False
        hierarchy.add_listener(self._on_hierarchy_event)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start_overlays(self) -> None:
        self.overlay.start()
        self.feature_overlay.start()

    def start(self) -> None:
        self.start_overlays()
        super().start()

    def stop(self):
        """Signal coordinator to stop."""
        self._stop_event.set()
        self._events.put(Shutdown())

    def stopped(self):
        return self._stop_event.is_set()

    def close(self) -> None:
        """Detach from the hierarchy and stop the overlays. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        self._stop_event.set()
        self.hierarchy.remove_listener(self._on_hierarchy_event)
        self.overlay.stop()
        self.feature_overlay.stop()
        logger.info("Training coordinator closed at generation %d", self.generation)

    def run(self):
        logger.info("Training coordinator started")
        while not self.stopped():
            try:
                event = self._events.get(timeout=1)
            except queue.Empty:
                continue
            try:
                self.handle(event)
            except Exception:
                logger.exception("Failed to handle %s", event)
            finally:
                self._events.task_done()
        self.close()
        logger.info("Training coordinator stopped")

    # =========================================================================
    # Events
    # =========================================================================

    def post(self, event) -> None:
        self._events.put(event)

    def process_pending(self) -> int:
        """Handle every queued event on the calling thread; returns how many."""
        n = 0
        while True:
            try:
                event = self._events.get_nowait()
            except queue.Empty:
                return n
            try:
                self.handle(event)
            finally:
                self._events.task_done()
            n += 1

    def _dispatch(self, event) -> None:
        if self.is_alive() and threading.current_thread() is not self:
            self.post(event)
        else:
            self.handle(event)

    def _on_hierarchy_event(self, event: HierarchyEvent) -> None:
        self.post(AnnotationChanged(event))

    def _tile_finished(self, event: TileReady) -> None:
        # Nothing drains the queue without the coordinator thread
        if self.is_alive():
            self.post(event)
        else:
            self._on_tile_ready(event)

    def handle(self, event) -> None:
        """Process one event on the calling thread."""
        if isinstance(event, ParamChanged):
            self._on_param(event.field, event.value)
        elif isinstance(event, LivePredictionChanged):
            self._on_live(event.enabled)
        elif isinstance(event, AnnotationChanged):
            self._on_annotations(event.event)
        elif isinstance(event, TrainRequested):
            try:
                self._retrain()
            finally:
                if event.done is not None:
                    event.done.set()
        elif isinstance(event, FeatureDisplayChanged):
            self._on_feature_display(event.channel)
        elif isinstance(event, TileReady):
            self._on_tile_ready(event)
        elif isinstance(event, Shutdown):
            self.close()
        else:
            raise TypeError(f"Unknown coordinator event: {event!r}")

    def _on_param(self, field: str, value) -> None:
        if field in DISPLAY_PARAMS:
            if field == "region":
                if value not in (WHOLE_IMAGE, ANNOTATIONS_ONLY):
                    raise ConfigurationError(f"Unknown region '{value}'")
                self.overlay.set_region(value)
                self.feature_overlay.set_region(value)
            else:
                self.overlay.set_opacity(value)
                self.feature_overlay.set_opacity(value)
            return
        if field not in MODEL_PARAMS:
            raise ConfigurationError(f"Unknown parameter '{field}'")

        self._apply_model_param(field, value)
        self._invalidate()
        if self.live:
            self._retrain()

    def _apply_model_param(self, field: str, value) -> None:
        if field == "resolution":
            self.resolution = self._lookup_resolution(value)
        elif field == "feature_operator":
            self.feature_operator = value
        elif field == "classifier":
            self.classifier = StatModel(value) if isinstance(value, str) else value
        elif field == "output_type":
            if value not in (CLASSIFICATION, PROBABILITY):
                raise ConfigurationError(f"Unknown output type '{value}'")
            self.output_type = value
        elif field == "boundary_strategy":
            self.boundary_strategy = value
        elif field == "boundary_thickness":
            self.boundary_strategy = with_thickness(self.boundary_strategy, value)
        elif field == "normalization":
            self.normalization = value
        elif field == "training_options":
            self.options = value
        logger.debug("Parameter %s set to %s", field, value)

    def _lookup_resolution(self, value) -> Resolution:
        if isinstance(value, Resolution):
            if value not in self.resolutions:
                self.resolutions = add_resolution(self.resolutions, value)
            return value
        for res in self.resolutions:
            if res.name == value:
                return res
        raise ConfigurationError(f"Unknown resolution '{value}'. Available: {[r.name for r in self.resolutions]}")

    def _invalidate(self) -> None:
        """Drop the current model; its tiles become stale."""
        self.stale = True
        self.generation += 1
        self.model = None
        self.overlay.uninstall(self.generation)
        if self.feature_channel is not None:
            self._install_feature_overlay()
        logger.debug("Pipeline changed, now at generation %d", self.generation)

    def _on_live(self, enabled: bool) -> None:
        self.live = bool(enabled)
        self.overlay.set_live(self.live)
        self.feature_overlay.set_live(self.live)
        logger.info("Live prediction %s", "on" if self.live else "off")
        if self.live and (self.stale or self.model is None):
            self._retrain()

    def _on_annotations(self, event: HierarchyEvent) -> None:
        if not is_relevant_change(event):
            return
        if self.live:
            self._retrain()
        else:
            self.stale = True

    def _on_feature_display(self, channel: Optional[str]) -> None:
        self.feature_channel = channel
        self.generation += 1
        self._install_feature_overlay()

    def _on_tile_ready(self, event: TileReady) -> None:
        overlay = self.feature_overlay if event.owner == self.feature_overlay.owner else self.overlay
        if event.generation != overlay.generation:
            logger.debug("Ignoring tile %s of old generation %d", event.tile, event.generation)
            return
        if self.on_repaint is not None:
            self.on_repaint(event.tile)

    # =========================================================================
    # Training
    # =========================================================================

    def _retrain(self) -> bool:
        """One training run; the previous model stays unless this one succeeds."""
        try:
            if self.classifier is None:
                raise ConfigurationError("No classifier selected!")
            operator = compose(self.feature_operator, self.resolution)
            table = assemble(self.hierarchy, self.source, operator, self.boundary_strategy)
            if table is None:
                logger.info("Nothing to train")
                self.report = TrainingReport.empty()
                return False
            model, report = train(
                table,
                self.classifier,
                self.options,
                self.normalization,
                self.output_type,
                self.resolution,
                operator,
                self.tile_size,
            )
        except ConfigurationError as e:
            logger.error("Cannot train pixel classifier: %s", e)
            self.last_error = e
            return False
        except ConsistencyError as e:
            logger.error("Training aborted, inconsistent labels: %s", e)
            self.last_error = e
            return False
        except ContractViolation as e:
            logger.critical("Pipeline contract violated: %s", e)
            self.last_error = e
            return False
        except Exception as e:
            logger.exception("Training failed")
            self.last_error = e
            return False

        self._install_model(model, report)
        return True

    def _install_model(self, model: TrainedModel, report: TrainingReport) -> None:
        self.generation += 1
        self.model = model
        self.report = report
        self.stale = False
        self.last_error = None
        self.overlay.install(model, self.generation)
        if self.feature_channel is not None:
            self._install_feature_overlay()
        logger.info("Installed %r as generation %d (%s)", model, self.generation, report)

    def _display_operator(self) -> Optional[FeatureOperator]:
        if self.model is not None:
            return self.model.feature_operator
        if self.feature_operator is None:
            return None
        return compose(self.feature_operator, self.resolution)

    def _install_feature_overlay(self) -> None:
        channel = self.feature_channel
        operator = self._display_operator() if channel is not None else None
        if operator is not None and channel not in operator.channel_names:
            logger.warning("Feature '%s' is not produced by the current feature calculator", channel)
            operator = None
        if operator is None:
            self.feature_overlay.uninstall(self.generation)
        else:
            self.feature_overlay.install((operator, channel), self.generation)

    # =========================================================================
    # Display / UI surface
    # =========================================================================

    def current_overlay_image(self, tile: TileRequest):
        """Tile of the overlay being shown, or None if not available yet."""
        if self.feature_channel is not None:
            return self.feature_overlay.request(tile)
        return self.overlay.request(tile)

    def training_report(self) -> TrainingReport:
        return self.report

    def feature_channels(self) -> list[str]:
        operator = self._display_operator()
        return operator.channel_names if operator is not None else []

    def auto_feature_range(self):
        return self.feature_overlay.auto_range()

    def results_string(self, x: float, y: float) -> Optional[str]:
        return results_string(self.model, self.source, x, y)

    def set_live_prediction(self, enabled: bool) -> None:
        self._dispatch(LivePredictionChanged(enabled))

    def request_training(self) -> None:
        self._dispatch(TrainRequested())

    def show_feature(self, channel: Optional[str]) -> None:
        self._dispatch(FeatureDisplayChanged(channel))

    def set_param(self, field: str, value) -> None:
        self._dispatch(ParamChanged(field, value))

    def set_resolution(self, resolution) -> None:
        self.set_param("resolution", resolution)

    def set_feature_operator(self, operator: Optional[FeatureOperator]) -> None:
        self.set_param("feature_operator", operator)

    def set_classifier(self, classifier) -> None:
        self.set_param("classifier", classifier)

    def set_output_type(self, output_type: str) -> None:
        self.set_param("output_type", output_type)

    def set_boundary_strategy(self, strategy) -> None:
        self.set_param("boundary_strategy", strategy)

    def set_boundary_thickness(self, thickness: float) -> None:
        self.set_param("boundary_thickness", thickness)

    def set_normalization(self, normalization: FeatureNormalization) -> None:
        self.set_param("normalization", normalization)

    def set_training_options(self, options: TrainingOptions) -> None:
        self.set_param("training_options", options)

    def set_region(self, region: str) -> None:
        self.set_param("region", region)

    def set_opacity(self, opacity: float) -> None:
        self.set_param("opacity", opacity)

    # =========================================================================
    # Applying the classifier
    # =========================================================================

    def _train_and_wait(self) -> None:
        """Retrain where events are handled and block until the run is over."""
        done = threading.Event()
        self._dispatch(TrainRequested(done))
        while not done.wait(timeout=1):
            if not self.is_alive() and not done.is_set():
                raise RuntimeError("Training coordinator stopped before training finished")

    def save_and_apply(self, directory: str) -> str:
        """Train with the current settings and export the model.

        Raises
        ------
        RuntimeError
            If there is nothing to save.
        """
        logger.debug("Saving & applying classifier")
        self._train_and_wait()
        model = self.model
        if model is None:
            raise RuntimeError("Nothing to save - please train a classifier first!")
        return export_artifact(model, directory)

    def classify_points(self, points: Iterable[tuple[float, float]]) -> list[Optional[str]]:
        """Class name at each full-resolution (x, y), None outside the image."""
        model = self.model
        if model is None:
            raise RuntimeError("No classifier available!")
        names = model.metadata.class_names
        out = []
        for x, y in points:
            index = model.classify(self.source, x, y)
            out.append(None if index is None else names[index])
        return out

    def classify_detections(self) -> int:
        """Classify every detection by the class at its centroid; returns how many were classified."""
        detections = self.hierarchy.detections()
        if not detections:
            return 0
        names = self.classify_points(d.roi.centroid for d in detections)
        assignments = [
            (d, PathClass.get(name) if name is not None else None)
            for d, name in zip(detections, names)
        ]
        self.hierarchy.set_path_classes(assignments)
        logger.info("Classified %d detections", len(assignments))
        return len(assignments)
