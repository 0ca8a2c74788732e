"""
Learned Inference Model Contract.

A learned component is any object exposing:
    run(features: np.ndarray) -> np.ndarray   # (batch, n_in) -> (batch, n_out)
    close() -> None

The bundled artifact format is a NumPy ``.npz`` archive holding an affine
model (``weights`` of shape (n_in, n_out) and ``bias`` of shape (n_out,)).
Feature rows shorter than n_in are zero-padded and longer rows truncated,
so one artifact serves variable-length inputs.
"""

import logging
from pathlib import Path
from typing import Union

import numpy as np

logger = logging.getLogger(__name__)


class ModelLoadError(Exception):
    """Artifact missing, unreadable or malformed."""


class InferenceModel:
    """Base class for learned components."""

    def run(self, features: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def close(self):
        """Release resources held by the model."""


class LinearModel(InferenceModel):
    """
    Affine model y = x @ W + b.

    Usage:
        model = LinearModel(weights, bias)
        out = model.run(np.array([[5.0, 0.9, 0.0]]))
    """

    def __init__(self, weights: np.ndarray, bias: np.ndarray, name: str = "linear"):
        weights = np.asarray(weights, dtype=float)
        bias = np.asarray(bias, dtype=float)

        if weights.ndim != 2:
            raise ValueError(f"weights must be 2D, got shape {weights.shape}")
        if bias.shape != (weights.shape[1],):
            raise ValueError(
                f"bias shape {bias.shape} does not match weights output size {weights.shape[1]}"
            )

        self.name = name
        self._weights = weights
        self._bias = bias
        self._closed = False

    @property
    def input_size(self) -> int:
        return self._weights.shape[0]

    @property
    def output_size(self) -> int:
        return self._weights.shape[1]

    @property
    def closed(self) -> bool:
        return self._closed

    def run(self, features: np.ndarray) -> np.ndarray:
        """
        Evaluate the model on a batch of feature rows.

        Args:
            features: Array of shape (batch, n) or (n,)

        Returns:
            Array of shape (batch, output_size)
        """
        if self._closed:
            raise RuntimeError(f"Model '{self.name}' is closed")

        x = np.atleast_2d(np.asarray(features, dtype=float))
        n_in = self.input_size

        if x.shape[1] < n_in:
            x = np.pad(x, ((0, 0), (0, n_in - x.shape[1])))
        elif x.shape[1] > n_in:
            x = x[:, :n_in]

        return x @ self._weights + self._bias

    def close(self):
        self._closed = True


def load_model_file(path: Union[str, Path]) -> LinearModel:
    """
    Load an affine model artifact.

    Args:
        path: Path to a ``.npz`` file with ``weights`` and ``bias``

    Returns:
        LinearModel

    Raises:
        ModelLoadError: If the file is missing or malformed
    """
    path = Path(path)
    if not path.is_file():
        raise ModelLoadError(f"Model file {path} not found")

    try:
        with np.load(path) as archive:
            weights = archive['weights']
            bias = archive['bias']
        model = LinearModel(weights, bias, name=path.stem)
    except (OSError, KeyError, ValueError) as e:
        raise ModelLoadError(f"Model file {path} is invalid: {e}") from e

    logger.debug(f"Loaded {path.name}: {model.input_size} -> {model.output_size}")
    return model
