"""
BehaviorGuard Core Processors

Public exports for ingestion and feature engineering.
"""

from core.processors.click import ClickFeatureExtractor
from core.processors.features import FeatureExtractor
from core.processors.ingestor import RawBuffers, RawEventIngestor
from core.processors.keyboard import KeyboardFeatureExtractor
from core.processors.mouse import MouseFeatureExtractor

__all__ = [
    "RawBuffers",
    "RawEventIngestor",
    "FeatureExtractor",
    "KeyboardFeatureExtractor",
    "MouseFeatureExtractor",
    "ClickFeatureExtractor",
]
