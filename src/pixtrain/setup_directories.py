"""
Directory setup for pixel classifier sessions.

- One base directory per session, given by config (output.base_dir)
- Trained classifiers under models/<artifact_name>/
- Training reports and feature importance tables under reports/
- Timestamps in filenames for easy sorting
"""

from pathlib import Path
from datetime import datetime, timezone


def setup_output_directories(base_output_dir):
    """
    Set up organized output directory structure.

    Parameters
    ----------
    base_output_dir : str or Path
        Base output directory (from InternalConfig.output.base_dir).

    Returns
    -------
    dict
        Dictionary with paths: 'base', 'models', 'reports', 'logs'
    """
    base_output_dir = Path(base_output_dir).expanduser().resolve()

    directories = {
        "base": base_output_dir,
        "models": base_output_dir / "models",
        "reports": base_output_dir / "reports",
        "logs": base_output_dir / "logs",
    }

    for path in directories.values():
        path.mkdir(parents=True, exist_ok=True)

    return directories


def get_model_dir(output_dirs, artifact_name):
    """
    Get the directory a trained classifier artifact is saved into.

    Example
    -------
    >>> get_model_dir(dirs, 'tumor_stroma')
    Path('output/models/tumor_stroma')
    """
    model_dir = Path(output_dirs["models"]) / artifact_name
    model_dir.mkdir(parents=True, exist_ok=True)
    return model_dir


def get_report_path(output_dirs, artifact_name, kind="report", ext="json", timestamp=None):
    """
    Get a timestamped report file path.

    Parameters
    ----------
    output_dirs : dict
        Output directories from setup_output_directories()
    artifact_name : str
        Classifier name used as filename prefix
    kind : str
        Report type: 'report', 'feature_importance', 'class_counts'
    ext : str
        File extension without the dot
    timestamp : datetime or str, optional
        If None, uses current time.

    Returns
    -------
    Path
        Full path: reports/NAME_KIND_YYYYMMDD_HHMMSS.EXT

    Example
    -------
    >>> get_report_path(dirs, 'tumor_stroma', 'feature_importance', 'csv')
    Path('output/reports/tumor_stroma_feature_importance_20251126_221706.csv')
    """
    if timestamp is None:
        timestamp = datetime.now(timezone.utc)
    elif isinstance(timestamp, str):
        timestamp = datetime.fromisoformat(timestamp.replace('Z', '+00:00'))

    report_dir = Path(output_dirs["reports"])
    report_dir.mkdir(parents=True, exist_ok=True)

    ext = ext[1:] if ext.startswith('.') else ext
    time_str = timestamp.strftime("%Y%m%d_%H%M%S")
    return report_dir / f"{artifact_name}_{kind}_{time_str}.{ext}"


def get_log_path(output_dirs, artifact_name=None):
    """
    Get organized log file path.

    Parameters
    ----------
    output_dirs : dict
        Output directories from setup_output_directories()
    artifact_name : str, optional
        Classifier name

    Returns
    -------
    Path
        Full path to log file
    """
    log_dir = Path(output_dirs["logs"])
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")

    if artifact_name:
        filename = f"session_{artifact_name}_{timestamp}.log"
    else:
        filename = "session_latest.log"

    return log_dir / filename
