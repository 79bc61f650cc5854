"""Model loading utilities"""

from .model_loader import check_models, load_face_landmarker, resolve_model_path

__all__ = ["check_models", "load_face_landmarker", "resolve_model_path"]
