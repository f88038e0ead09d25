"""
Registration of protected assets: decode, hash, check the vault for existing
copies, then persist fingerprints and the asset record.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import structlog

from sentinel import config
from sentinel.core.exceptions import AssetNotFoundError, ImageDecodeError
from sentinel.core.repository import AlertStore, FingerprintVault
from sentinel.core.utils import new_asset_id, thumbnail_reference
from sentinel.models.fingerprint import FingerprintSet, HashAlgorithm, ProtectedAsset, RegistrationResult
from sentinel.models.monitoring import AlertSeverity, AlertType, ContentAlert
from sentinel.services.image_hash import ImageSource, generate_all_hashes, hash_image
from sentinel.services.similarity import MatchPolicy

logger = structlog.get_logger()


class AssetRegistry:
    """Registers, removes and toggles protected assets in a vault."""

    def __init__(self,
                 vault: FingerprintVault,
                 alerts: Optional[AlertStore] = None,
                 policy: Optional[MatchPolicy] = None,
                 max_workers: int = config.HASH_WORKERS):
        self.vault = vault
        self.alerts = alerts
        self.policy = policy or MatchPolicy()
        self.max_workers = max_workers

    def register(self, source: ImageSource, filename: str,
                 description: Optional[str] = None) -> RegistrationResult:
        """
        Register an encoded image.

        Raises:
            ImageDecodeError: if the source is not a decodable image
        """
        try:
            hashes = hash_image(source)
        except ImageDecodeError as e:
            logger.error("Asset registration failed", filename=filename, error=str(e))
            raise
        return self._store(hashes, filename, description)

    def register_pixels(self, pixels: np.ndarray, filename: str,
                        description: Optional[str] = None) -> RegistrationResult:
        """Register already-decoded pixel data."""
        return self._store(generate_all_hashes(pixels), filename, description)

    def register_batch(self, items: Sequence[Tuple[ImageSource, str]]) -> List[RegistrationResult]:
        """
        Register several images, hashing them in parallel.

        Hashing has no shared state so it runs on a thread pool; vault writes
        happen afterwards in input order. Undecodable images are reported in
        the result instead of aborting the batch.
        """
        hashed: List[Optional[FingerprintSet]] = [None] * len(items)
        errors: Dict[int, str] = {}

        with ThreadPoolExecutor(max_workers=max(1, self.max_workers)) as executor:
            futures = {executor.submit(hash_image, source): i for i, (source, _) in enumerate(items)}
            for future in as_completed(futures):
                index = futures[future]
                try:
                    hashed[index] = future.result()
                except ImageDecodeError as e:
                    errors[index] = str(e)

        results = []
        for index, (_, filename) in enumerate(items):
            if index in errors:
                logger.warning("Skipping undecodable image", filename=filename, error=errors[index])
                results.append(RegistrationResult(filename=filename, error=errors[index]))
            else:
                results.append(self._store(hashed[index], filename, None))

        logger.info("Batch registration completed",
                    total=len(items),
                    registered=len(items) - len(errors),
                    failed=len(errors))
        return results

    def _store(self, hashes: FingerprintSet, filename: str,
               description: Optional[str]) -> RegistrationResult:
        threshold = self.policy.threshold_for(HashAlgorithm.PHASH)
        duplicates = self.vault.search_matches(hashes.phash.hash, HashAlgorithm.PHASH, threshold)

        asset_id = new_asset_id()
        metadata: Dict[str, Any] = {"filename": filename}
        if description:
            metadata["description"] = description
        self.vault.store(asset_id, hashes, metadata)

        asset = ProtectedAsset(
            id=asset_id,
            filename=filename,
            thumbnail_ref=thumbnail_reference(asset_id, filename),
            hashes=hashes,
        )
        self.vault.save_asset(asset)

        if duplicates and self.alerts is not None:
            best = duplicates[0]
            self.alerts.save(ContentAlert(
                type=AlertType.POTENTIAL_MATCH,
                severity=AlertSeverity.WARNING,
                title="Similar Asset Already Protected",
                description=f'"{filename}" closely matches protected asset {best.asset_id}',
                similarity=best.similarity,
                asset_id=asset_id,
            ))

        logger.info("Protected asset registered",
                    asset_id=asset_id,
                    filename=filename,
                    duplicates=len(duplicates))
        return RegistrationResult(filename=filename, asset=asset, duplicates=duplicates)

    def get(self, asset_id: str) -> ProtectedAsset:
        asset = self.vault.get_asset(asset_id)
        if asset is None:
            raise AssetNotFoundError(f"Unknown asset: {asset_id}")
        return asset

    def set_monitoring(self, asset_id: str, enabled: bool) -> ProtectedAsset:
        asset = self.get(asset_id)
        asset.monitoring_enabled = enabled
        self.vault.save_asset(asset)
        logger.info("Asset monitoring toggled", asset_id=asset_id, enabled=enabled)
        return asset

    def remove(self, asset_id: str) -> None:
        if not self.vault.delete_asset(asset_id):
            raise AssetNotFoundError(f"Unknown asset: {asset_id}")
        logger.info("Protected asset removed", asset_id=asset_id)
