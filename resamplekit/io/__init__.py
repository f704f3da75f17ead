"""Data input/output utilities."""

from resamplekit.config import SyntheticDataConfig
from resamplekit.data.dataset import load_dataset
from resamplekit.io.synthetic_generator import SyntheticGenerator

__all__ = [
    "SyntheticDataConfig",
    "SyntheticGenerator",
    "load_dataset",
]
