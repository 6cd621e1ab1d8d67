"""
Feature extraction facade: one FeatureVector per call from the current buffers.
"""

from core.processors.click import ClickFeatureExtractor
from core.processors.ingestor import RawBuffers
from core.processors.keyboard import KeyboardFeatureExtractor
from core.processors.mouse import MouseFeatureExtractor
from core.schemas.outputs import FeatureVector


class FeatureExtractor:
    """Reduces RawBuffers into per-channel feature vectors on demand."""

    def __init__(self) -> None:
        self.keyboard = KeyboardFeatureExtractor()
        self.mouse = MouseFeatureExtractor()
        self.click = ClickFeatureExtractor()

    def extract(self, buffers: RawBuffers) -> FeatureVector:
        return FeatureVector(
            ks=self.keyboard.extract(buffers.keystrokes, buffers.digraphs),
            mouse=self.mouse.extract(buffers.mouse, buffers.jitter),
            click=self.click.extract(buffers.clicks),
        )
