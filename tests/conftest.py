import io

import numpy as np
import pytest
from PIL import Image

from sentinel.core.repository import create_stores
from sentinel.models.monitoring import MonitoringTarget, RiskLevel, TargetCategory


def random_image(seed: int, width: int = 64, height: int = 48, low: int = 0, high: int = 256) -> np.ndarray:
    """Seeded RGBA noise image."""
    rng = np.random.default_rng(seed)
    rgb = rng.integers(low, high, size=(height, width, 3), dtype=np.uint8)
    alpha = np.full((height, width, 1), 255, dtype=np.uint8)
    return np.concatenate([rgb, alpha], axis=2)


def uniform_image(width: int, height: int, color=(120, 80, 200)) -> np.ndarray:
    pixels = np.zeros((height, width, 4), dtype=np.uint8)
    pixels[:, :, :3] = color
    pixels[:, :, 3] = 255
    return pixels


def png_bytes(pixels: np.ndarray) -> bytes:
    buffer = io.BytesIO()
    Image.fromarray(pixels).save(buffer, format="PNG")
    return buffer.getvalue()


def make_target(index: int, enabled: bool = True) -> MonitoringTarget:
    return MonitoringTarget(
        id=f"target_{index}",
        name=f"Site-{index}",
        category=TargetCategory.FORUM,
        risk_level=RiskLevel.HIGH,
        enabled=enabled,
    )


@pytest.fixture
def stores():
    return create_stores("memory")
