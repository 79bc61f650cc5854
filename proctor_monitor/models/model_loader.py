"""
Model Loader - Locating, fetching and opening the face landmark model
"""

import os
import logging
from typing import Optional
from urllib.parse import urlparse

import httpx

from ..config import Settings
from ..errors import ModelLoadError

logger = logging.getLogger(__name__)

# Default model directory (relative to this file's directory)
MODELS_DIR = os.path.join(os.path.dirname(__file__), "weights")

DOWNLOAD_TIMEOUT_SECONDS = 60.0


def _is_remote(location: str) -> bool:
    return urlparse(location).scheme in ("http", "https")


def fetch_model_asset(url: str, cache_dir: str) -> str:
    """
    Download a model asset into the cache directory.

    Already cached files are reused. The download goes to a temporary
    name first so an interrupted fetch never leaves a truncated model.

    Returns:
        Local path of the cached asset

    Raises:
        ModelLoadError: Network or HTTP failure
    """
    filename = os.path.basename(urlparse(url).path) or "face_landmarker.task"
    os.makedirs(cache_dir, exist_ok=True)
    target = os.path.join(cache_dir, filename)

    if os.path.exists(target):
        logger.info(f"Using cached model: {target}")
        return target

    partial = target + ".part"
    logger.info(f"Downloading face landmark model from: {url}")
    try:
        with httpx.Client(timeout=DOWNLOAD_TIMEOUT_SECONDS, follow_redirects=True) as client:
            with client.stream("GET", url) as response:
                response.raise_for_status()
                with open(partial, "wb") as fh:
                    for chunk in response.iter_bytes():
                        fh.write(chunk)
        os.replace(partial, target)
    except (httpx.HTTPError, OSError) as e:
        if os.path.exists(partial):
            os.unlink(partial)
        raise ModelLoadError(
            f"Failed to download face landmark model from {url}: {e}"
        ) from e

    return target


def get_face_landmarker_path(location: str) -> Optional[str]:
    """
    Find a local face landmarker task file.

    Args:
        location: Configured path (absolute, relative, or bare filename)

    Returns:
        Existing path or None if not found
    """
    possible_paths = [
        location,
        os.path.join(MODELS_DIR, os.path.basename(location)),
        os.path.join(os.getcwd(), os.path.basename(location)),
    ]

    for path in possible_paths:
        if os.path.exists(path):
            return path

    return None


def resolve_model_path(settings: Settings) -> str:
    """
    Turn the configured model location into a local file path.

    Raises:
        ModelLoadError: Asset not found or could not be fetched
    """
    location = settings.MODEL_ASSET_PATH

    if _is_remote(location):
        return fetch_model_asset(location, settings.MODEL_CACHE_DIR)

    path = get_face_landmarker_path(location)
    if path is None:
        raise ModelLoadError(
            f"{location} not found. Download face_landmarker.task from "
            f"https://storage.googleapis.com/mediapipe-models/face_landmarker/"
            f"face_landmarker/float16/latest/face_landmarker.task "
            f"and place it in {MODELS_DIR}"
        )
    return path


def load_face_landmarker(settings: Settings):
    """
    Create a MediaPipe face landmark session (blocking).

    Returns:
        MediaPipeFaceDetector instance
    """
    from ..detectors.face_landmarker import MediaPipeFaceDetector

    path = resolve_model_path(settings)
    logger.info(f"Loading face landmark model from: {path}")

    return MediaPipeFaceDetector(
        path,
        delegate=settings.DELEGATE,
        max_faces=settings.MAX_FACES,
        min_detection_confidence=settings.MIN_DETECTION_CONFIDENCE,
        min_presence_confidence=settings.MIN_PRESENCE_CONFIDENCE,
        min_tracking_confidence=settings.MIN_TRACKING_CONFIDENCE,
    )


def check_models(settings: Settings) -> dict:
    """
    Check which model pieces are available.

    Returns:
        Dict with model status
    """
    status = {
        "mediapipe": False,
        "face_landmarker": False,
        "remote_asset": _is_remote(settings.MODEL_ASSET_PATH)
    }

    try:
        import mediapipe  # noqa: F401
        status["mediapipe"] = True
    except ImportError:
        pass

    if status["remote_asset"]:
        filename = os.path.basename(urlparse(settings.MODEL_ASSET_PATH).path)
        status["face_landmarker"] = os.path.exists(
            os.path.join(settings.MODEL_CACHE_DIR, filename)
        )
    else:
        status["face_landmarker"] = get_face_landmarker_path(settings.MODEL_ASSET_PATH) is not None

    return status
