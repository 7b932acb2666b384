import importlib.util
import logging
import numpy as np
from typing import List, Union

logger = logging.getLogger(__name__)


class FaceEngineError(Exception):
    pass


class FaceEngine:
    """
    Wrapper around DeepFace for face embeddings.
    """

    MODEL_NAME = "Facenet512"
    DETECTOR_BACKEND = "opencv" # Fast

    @staticmethod
    def is_installed() -> bool:
        return importlib.util.find_spec("deepface") is not None

    @staticmethod
    def represent(image_path_or_data: Union[str, np.ndarray]) -> dict:
        """
        Embedding + detector confidence for the single face in the image.

        Returns {"embedding": [...], "confidence": 0..100}.
        Raises FaceEngineError when no face, several faces, or the engine fails.
        """
        try:
            # Lazy import; a broken backend (e.g. tensorflow missing) fails here
            from deepface import DeepFace
        except ImportError as e:
            logger.error(f"Face engine could not be loaded: {e}")
            raise FaceEngineError(f"Face engine could not be loaded: {e}") from e

        try:
            results = DeepFace.represent(
                img_path=image_path_or_data,
                model_name=FaceEngine.MODEL_NAME,
                enforce_detection=True,
                detector_backend=FaceEngine.DETECTOR_BACKEND
            )
        except ValueError as ve:
            # DeepFace raises ValueError if face could not be detected when enforce_detection=True
            raise FaceEngineError(f"No face detected in the image: {ve}") from ve
        except Exception as e:
            logger.error(f"Face engine error: {e}")
            raise FaceEngineError(str(e)) from e

        if not results:
            raise FaceEngineError("No face detected in the image")

        if len(results) > 1:
            raise FaceEngineError(f"Multiple faces detected: {len(results)}")

        face = results[0]
        confidence = face.get("face_confidence")
        return {
            "embedding": face["embedding"],
            "confidence": float(confidence) * 100 if confidence is not None else None,
        }

    @staticmethod
    def compute_similarity(emb1: List[float], emb2: List[float]) -> float:
        """
        Compute cosine similarity between two embeddings.
        Returns a value between -1 and 1 (1 means identical).
        """
        a = np.array(emb1, dtype=float)
        b = np.array(emb2, dtype=float)

        norm_a = np.linalg.norm(a)
        norm_b = np.linalg.norm(b)

        if norm_a == 0 or norm_b == 0:
            return 0.0

        return float(np.dot(a, b) / (norm_a * norm_b))
