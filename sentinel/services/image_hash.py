"""
Perceptual image hashing for detecting re-encoded copies of protected images.
Produces three independent 64-bit hashes (aHash, dHash, pHash) per image.
"""

import io
import math
import os
from typing import Union, BinaryIO

import cv2
import numpy as np
import structlog
from PIL import Image, UnidentifiedImageError

from sentinel.core.exceptions import ImageDecodeError
from sentinel.models.fingerprint import HASH_BITS, HASH_HEX_LENGTH, FingerprintSet, HashAlgorithm, HashResult

logger = structlog.get_logger()

# Downsample sizes as (width, height)
AHASH_SIZE = (8, 8)
DHASH_SIZE = (9, 8)
PHASH_SIZE = (32, 32)
PHASH_LOW_FREQ = 8

# Luminosity weights 0.299R + 0.587G + 0.114B scaled to integers
LUMA_WEIGHTS = np.array([299, 587, 114], dtype=np.int64)
LUMA_SCALE = 1000.0

ImageSource = Union[str, os.PathLike, bytes, bytearray, BinaryIO]


def load_pixels(source: ImageSource) -> np.ndarray:
    """
    Decode an image source into an RGBA pixel array.

    Args:
        source: Path, raw encoded bytes, or a binary file object

    Returns:
        uint8 array of shape (height, width, 4)
    """
    if isinstance(source, (bytes, bytearray)):
        fp = io.BytesIO(source)
    elif isinstance(source, (str, os.PathLike)) or hasattr(source, "read"):
        fp = source
    else:
        raise ImageDecodeError(f"Unsupported image source type: {type(source).__name__}")

    try:
        with Image.open(fp) as image:
            image.load()
            rgba = image.convert("RGBA")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        logger.error("Failed to decode image", error=str(e))
        raise ImageDecodeError(f"Could not decode image: {e}") from e

    return np.asarray(rgba, dtype=np.uint8)


def _check_pixels(pixels: np.ndarray) -> np.ndarray:
    pixels = np.asarray(pixels)
    if pixels.ndim != 3 or pixels.shape[2] not in (3, 4):
        raise ImageDecodeError(f"Expected an HxWx3 or HxWx4 pixel array, got shape {pixels.shape}")
    if pixels.shape[0] == 0 or pixels.shape[1] == 0:
        raise ImageDecodeError("Pixel array is empty")
    if pixels.dtype != np.uint8:
        raise ImageDecodeError(f"Expected uint8 pixel data, got {pixels.dtype}")
    return np.ascontiguousarray(pixels)


def _luma(pixels: np.ndarray, size: tuple) -> np.ndarray:
    """Resize to ``size`` and return integer luminosity scaled by LUMA_SCALE."""
    image = Image.fromarray(_check_pixels(pixels))
    if image.size != size:
        image = image.resize(size, Image.Resampling.LANCZOS)
    rgb = np.asarray(image, dtype=np.int64)[:, :, :3]
    return rgb @ LUMA_WEIGHTS


def _bits_to_hex(bits: np.ndarray) -> str:
    hash_bits = ''.join('1' if b else '0' for b in bits.flatten())
    return hex(int(hash_bits, 2))[2:].rjust(HASH_HEX_LENGTH, '0').upper()


def ahash(pixels: np.ndarray) -> str:
    """
    Generate average hash (aHash).
    Simple and fast, good for exact or near-exact duplicates.
    """
    luma = _luma(pixels, AHASH_SIZE)

    # pixel > mean, compared as pixel * n > sum to stay in integers
    total = int(luma.sum())
    bits = luma * luma.size > total

    return _bits_to_hex(bits)


def dhash(pixels: np.ndarray) -> str:
    """
    Generate difference hash (dHash) from horizontal gradients.
    Tolerates brightness and contrast changes.
    """
    luma = _luma(pixels, DHASH_SIZE)

    # 9 columns give 8 left/right comparisons per row
    bits = luma[:, :-1] > luma[:, 1:]

    return _bits_to_hex(bits)


def _dct_scale(n: int, count: int) -> np.ndarray:
    scale = np.full(count, math.sqrt(2.0 / n))
    scale[0] = math.sqrt(1.0 / n)
    return scale


def phash(pixels: np.ndarray) -> str:
    """
    Generate perceptual hash (pHash) from the low-frequency DCT block.
    Most robust of the three against recompression and resizing.
    """
    gray = _luma(pixels, PHASH_SIZE).astype(np.float64) / LUMA_SCALE

    # cv2.dct is orthonormal; undo the scaling to get the plain cosine sums
    n = PHASH_SIZE[0]
    scale = _dct_scale(n, PHASH_LOW_FREQ)
    dct = cv2.dct(gray)[:PHASH_LOW_FREQ, :PHASH_LOW_FREQ] / np.outer(scale, scale)

    # Rows of cv2 output follow y; order coefficients with the x frequency outermost
    coefficients = dct.T.flatten()[1:]  # drop DC
    median = np.median(coefficients)

    bits = np.zeros(HASH_BITS, dtype=bool)
    bits[:coefficients.size] = coefficients > median

    return _bits_to_hex(bits)


_HASHERS = {
    HashAlgorithm.AHASH: ahash,
    HashAlgorithm.DHASH: dhash,
    HashAlgorithm.PHASH: phash,
}


def compute_hash(pixels: np.ndarray, algorithm: HashAlgorithm) -> HashResult:
    """Generate one perceptual hash for decoded pixel data."""
    algorithm = HashAlgorithm(algorithm)
    try:
        value = _HASHERS[algorithm](pixels)
    except ImageDecodeError as e:
        logger.error("Failed to generate hash", algorithm=algorithm.value, error=str(e))
        raise

    logger.debug("Generated hash", algorithm=algorithm.value, hash=value)
    return HashResult(hash=value, algorithm=algorithm)


def generate_all_hashes(pixels: np.ndarray) -> FingerprintSet:
    """
    Generate all three perceptual hashes for robust matching.

    Returns:
        FingerprintSet with aHash, dHash and pHash
    """
    pixels = _check_pixels(pixels)
    hashes = FingerprintSet(
        ahash=compute_hash(pixels, HashAlgorithm.AHASH),
        dhash=compute_hash(pixels, HashAlgorithm.DHASH),
        phash=compute_hash(pixels, HashAlgorithm.PHASH),
    )

    logger.info("Generated image hashes",
                width=pixels.shape[1],
                height=pixels.shape[0],
                hashes=hashes.hex_values())
    return hashes


def hash_image(source: ImageSource) -> FingerprintSet:
    """Decode an image source and generate all three hashes."""
    return generate_all_hashes(load_pixels(source))
