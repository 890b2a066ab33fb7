"""Headless pixel classifier session.

This module contains the actual runner, separated from argument parsing.
Scripts are thin wrappers; this is the real implementation.

A session loads an image and GeoJSON annotations, trains once with the
resolved configuration, and writes the classifier artifact plus a JSON
report (and a feature-importance CSV when the classifier ranks features).
"""

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import cv2
import numpy as np

from pixtrain.imaging.classes import PathClass
from pixtrain.imaging.hierarchy import ROI, AnnotationHierarchy, PathObject
from pixtrain.imaging.tiles import ArrayTileSource
from pixtrain.pipeline import TrainingCoordinator, TrainRequested
from pixtrain.schemas import init_runtime_config
from pixtrain.setup_directories import get_log_path, get_model_dir, get_report_path
from pixtrain.training.model import export_artifact

__all__ = ['run_session', 'setup_logging', 'load_image', 'load_annotations', 'main']

logger = logging.getLogger(__name__)


def setup_logging(level: str, log_path: Optional[Path] = None) -> None:
    """Configure the root logger with console and (optionally) file handlers."""
    log_level = getattr(logging, str(level).upper(), logging.INFO)

    formatter = logging.Formatter(
        fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # Clear existing handlers and add new ones
    root = logging.getLogger()
    root.setLevel(log_level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    if log_path is not None:
        fh = logging.FileHandler(log_path)
        fh.setLevel(log_level)
        fh.setFormatter(formatter)
        root.addHandler(fh)

    ch = logging.StreamHandler()
    ch.setLevel(log_level)
    ch.setFormatter(formatter)
    root.addHandler(ch)

    logger.info("Logging: level=%s, file=%s", logging.getLevelName(log_level), log_path)


def load_image(image_path: str) -> ArrayTileSource:
    """Read an image with OpenCV as an in-memory tile source (RGB channel order)."""
    image = cv2.imread(str(image_path), cv2.IMREAD_UNCHANGED)
    if image is None:
        raise FileNotFoundError(f"Could not read image: {image_path}")
    if image.ndim == 3 and image.shape[2] == 4:
        image = cv2.cvtColor(image, cv2.COLOR_BGRA2RGB)
    elif image.ndim == 3 and image.shape[2] == 3:
        image = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
    logger.info("Loaded %s: %s %s", Path(image_path).name, image.shape, image.dtype)
    return ArrayTileSource(image)


def _polygons(geometry: dict) -> list:
    kind = geometry.get("type")
    if kind == "Polygon":
        return [geometry["coordinates"][0]]
    if kind == "MultiPolygon":
        return [polygon[0] for polygon in geometry["coordinates"]]
    logger.warning("Skipping unsupported geometry type %s", kind)
    return []


def _path_class(properties: dict) -> Optional[PathClass]:
    classification = properties.get("classification")
    if not classification or not classification.get("name"):
        return None
    color = classification.get("color")
    return PathClass.get(classification["name"], color=tuple(color) if color else None)


def load_annotations(annotations_path: str) -> AnnotationHierarchy:
    """Read a GeoJSON FeatureCollection (or list of features) into a hierarchy.

    ``properties.classification.name`` gives the class; features with
    ``properties.objectType == "detection"`` become detections.
    """
    with open(annotations_path) as f:
        data = json.load(f)
    features = data.get("features", []) if isinstance(data, dict) else data

    objects = []
    for feature in features:
        properties = feature.get("properties") or {}
        kind = "detection" if properties.get("objectType") == "detection" else "annotation"
        path_class = _path_class(properties)
        for ring in _polygons(feature.get("geometry") or {}):
            vertices = np.asarray(ring, dtype=np.float64)
            if len(vertices) > 1 and np.array_equal(vertices[0], vertices[-1]):
                vertices = vertices[:-1]
            objects.append(PathObject(ROI(vertices), path_class, kind=kind))

    logger.info("Loaded %d objects from %s", len(objects), Path(annotations_path).name)
    return AnnotationHierarchy(objects)


def run_session(
    user_config_path: Optional[str],
    image_path: str,
    annotations_path: str,
    cli_args: Optional[Dict[str, Any]] = None,
    verbose: bool = False,
) -> Dict[str, Optional[Path]]:
    """Train a pixel classifier once and save it.

    Parameters
    ----------
    user_config_path : str, optional
        Python file with a CONFIG dict. None uses defaults only.
    image_path : str
        Image readable by OpenCV.
    annotations_path : str
        GeoJSON annotations.
    cli_args : dict, optional
        CLI overrides. Keys: base_dir, classifier, resolution, downsample,
        max_samples, rng_seed. All optional.
    verbose : bool, optional
        Enable DEBUG logging and print the full resolved config.

    Returns
    -------
    dict
        Paths written: 'report', 'model' and 'feature_importance'
        (None for anything not produced).
    """
    args = argparse.Namespace(config=user_config_path, verbose=verbose, **(cli_args or {}))
    config, output_dirs, run_id = init_runtime_config(args)
    artifact_name = config.output.artifact_name

    setup_logging(config.logging.level, get_log_path(output_dirs, artifact_name))

    print(f"\n{'='*60}")
    print("pixtrain Pixel Classifier Session")
    print('='*60)
    print(f"Config:      {user_config_path}")
    print(f"Image:       {image_path}")
    print(f"Annotations: {annotations_path}")
    print(f"Classifier:  {config.classifier.kind}")
    print(f"Resolution:  {config.resolution.name}")
    print(f"Output:      {output_dirs['base']}")
    print('='*60)

    if verbose:
        print("\nFull Internal Configuration:")
        print(json.dumps(config.model_dump(), indent=2))
        print('='*60)

    source = load_image(image_path)
    hierarchy = load_annotations(annotations_path)

    outputs: Dict[str, Optional[Path]] = {"report": None, "model": None, "feature_importance": None}
    coordinator = TrainingCoordinator(hierarchy, source, config)
    try:
        coordinator.handle(TrainRequested())
        report = coordinator.training_report()
        model = coordinator.model

        if model is None:
            logger.warning("No classifier trained: %s", coordinator.last_error or "nothing to train")
        else:
            outputs["model"] = Path(export_artifact(model, str(get_model_dir(output_dirs, artifact_name))))

        summary = {
            "run_id": run_id,
            "image": str(image_path),
            "annotations": str(annotations_path),
            "resolution": str(coordinator.resolution),
            "classifier": config.classifier.kind,
            "classes": model.metadata.class_names if model is not None else [],
            "report": report.to_dict(),
        }
        report_path = get_report_path(output_dirs, artifact_name, "report", "json")
        with open(report_path, "w") as f:
            json.dump(summary, f, indent=2, default=str)
        outputs["report"] = report_path

        if report.feature_importance is not None:
            csv_path = get_report_path(output_dirs, artifact_name, "feature_importance", "csv")
            report.to_frame().to_csv(csv_path)
            outputs["feature_importance"] = csv_path
    finally:
        coordinator.close()

    print(str(report))
    logger.info("Session finished: %s", {k: str(v) for k, v in outputs.items() if v is not None})
    return outputs


def main(argv=None):
    parser = argparse.ArgumentParser(description="Train a pixel classifier from annotations")
    parser.add_argument("image", help="Image file")
    parser.add_argument("annotations", help="GeoJSON annotations")
    parser.add_argument("--config", help="Path to user config file")
    parser.add_argument("--base-dir", help="Output directory")
    parser.add_argument("--classifier", help="Classifier kind (rtrees, ann_mlp, logistic_regression, knearest, majority)")
    parser.add_argument("--resolution", help="Resolution name, e.g. 'Moderate'")
    parser.add_argument("--downsample", type=float, help="Custom downsample")
    parser.add_argument("--max-samples", type=int, help="Maximum training samples")
    parser.add_argument("--rng-seed", type=int, help="Random seed")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    run_session(
        args.config,
        args.image,
        args.annotations,
        cli_args={
            "base_dir": args.base_dir,
            "classifier": args.classifier,
            "resolution": args.resolution,
            "downsample": args.downsample,
            "max_samples": args.max_samples,
            "rng_seed": args.rng_seed,
        },
        verbose=args.verbose,
    )


if __name__ == "__main__":
    main()
