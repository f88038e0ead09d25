"""
Continuous monitoring scans: every enabled protected asset is checked against
every enabled risk site, one pair at a time, and matches become alerts.
"""

from typing import Callable, List, Optional, Protocol, Sequence

import structlog

from sentinel.core.exceptions import PersistenceError, ScanInProgressError
from sentinel.core.repository import AlertStore, FingerprintVault, SessionHistory
from sentinel.core.utils import round_half_up, utcnow
from sentinel.models.fingerprint import ProtectedAsset
from sentinel.models.monitoring import (
    DEFAULT_TARGETS,
    AlertSeverity,
    AlertType,
    ContentAlert,
    MonitoringSession,
    MonitoringTarget,
    SessionStatus,
)
from sentinel.services.crawler import Crawler

logger = structlog.get_logger()

ProgressCallback = Callable[[MonitoringSession], None]


class CancelSignal(Protocol):
    def is_set(self) -> bool: ...


class ScanOrchestrator:
    """
    Runs monitoring sessions over the asset x target cross-product.

    Assets form the outer loop and targets the inner loop, so progress is
    reproducible for a given vault and target list. Only one session runs
    per orchestrator at a time.
    """

    def __init__(self,
                 vault: FingerprintVault,
                 alerts: AlertStore,
                 history: SessionHistory,
                 crawler: Crawler,
                 targets: Optional[Sequence[MonitoringTarget]] = None):
        self.vault = vault
        self.alerts = alerts
        self.history = history
        self.crawler = crawler
        self.targets = list(DEFAULT_TARGETS if targets is None else targets)
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def run(self,
                  on_progress: Optional[ProgressCallback] = None,
                  cancel_event: Optional[CancelSignal] = None) -> MonitoringSession:
        """
        Run one monitoring scan to a terminal state.

        Args:
            on_progress: Called with a snapshot of the session after each state change
            cancel_event: Checked between pairs; when set the scan stops as ``cancelled``

        Returns:
            The finished session (completed, cancelled or error)
        """
        if self._running:
            raise ScanInProgressError("A monitoring scan is already running")

        self._running = True
        try:
            return await self._run(on_progress, cancel_event)
        finally:
            self._running = False

    async def _run(self,
                   on_progress: Optional[ProgressCallback],
                   cancel_event: Optional[CancelSignal]) -> MonitoringSession:
        session = MonitoringSession(status=SessionStatus.SCANNING, started_at=utcnow())
        logger.info("Starting monitoring scan", session_id=session.id)

        try:
            assets = [a for a in self.vault.list_assets() if a.monitoring_enabled]
            targets = [t for t in self.targets if t.enabled]
        except Exception as e:
            logger.error("Failed to enumerate scan inputs", session_id=session.id, error=str(e))
            return self._fail(session, on_progress, f"Could not read assets or targets: {e}")

        session.total_targets = len(assets) * len(targets)

        try:
            if not assets:
                return self._finish_empty(session, on_progress)

            for asset in assets:
                for target in targets:
                    if cancel_event is not None and cancel_event.is_set():
                        return self._cancel(session, on_progress)

                    session.current_target = target.name
                    session.targets_scanned += 1
                    session.progress = round_half_up(session.targets_scanned / session.total_targets * 100)
                    self._notify(on_progress, session)

                    try:
                        result = await self.crawler.crawl(target, asset)
                    except Exception as e:
                        session.pairs_failed += 1
                        logger.warning("Error scanning target",
                                       session_id=session.id,
                                       target=target.name,
                                       asset_id=asset.id,
                                       error=str(e))
                        continue

                    if result.found and result.url:
                        self._record_match(session, asset, target, result.similarity, result.url)
                        self._notify(on_progress, session)

                if not self.vault.record_scan(asset.id, matched=False, scanned_at=utcnow()):
                    logger.info("Asset removed during scan", session_id=session.id, asset_id=asset.id)

            return self._complete(session, on_progress, assets, targets)
        except PersistenceError as e:
            logger.error("Scan aborted by storage failure", session_id=session.id, error=str(e))
            return self._fail(session, on_progress, str(e))

    def _finish_empty(self, session: MonitoringSession,
                      on_progress: Optional[ProgressCallback]) -> MonitoringSession:
        session.status = SessionStatus.COMPLETED
        session.completed_at = utcnow()
        session.progress = 100
        self.alerts.save(ContentAlert(
            type=AlertType.SCAN_COMPLETE,
            severity=AlertSeverity.INFO,
            title="No Assets to Monitor",
            description="Add protected assets to enable continuous monitoring.",
        ))
        self.history.append(session)
        self._notify(on_progress, session)
        logger.info("Scan skipped, no monitored assets", session_id=session.id)
        return session

    def _complete(self, session: MonitoringSession, on_progress: Optional[ProgressCallback],
                  assets: List[ProtectedAsset], targets: List[MonitoringTarget]) -> MonitoringSession:
        session.status = SessionStatus.COMPLETED
        session.completed_at = utcnow()
        session.progress = 100
        session.current_target = None

        self.alerts.save(self._summary_alert(session, assets, targets))
        self.history.append(session)
        self._notify(on_progress, session)

        logger.info("Monitoring scan completed",
                    session_id=session.id,
                    pairs=session.total_targets,
                    matches_found=session.matches_found,
                    pairs_failed=session.pairs_failed)
        return session

    def _record_match(self, session: MonitoringSession, asset: ProtectedAsset,
                      target: MonitoringTarget, similarity: float, url: str) -> None:
        session.matches_found += 1

        if not self.vault.record_scan(asset.id, matched=True, scanned_at=utcnow()):
            logger.info("Asset removed during scan", session_id=session.id, asset_id=asset.id)

        self.alerts.save(ContentAlert(
            type=AlertType.MATCH_FOUND,
            severity=AlertSeverity.CRITICAL,
            title="Potential Match Detected!",
            description=f'Content similar to "{asset.filename}" found on {target.name}',
            target_site=target.name,
            match_url=url,
            similarity=round_half_up(similarity),
            asset_id=asset.id,
        ))

        logger.warning("Match found",
                       session_id=session.id,
                       asset_id=asset.id,
                       target=target.name,
                       similarity=similarity,
                       url=url)

    @staticmethod
    def _summary_alert(session: MonitoringSession, assets: List[ProtectedAsset],
                       targets: List[MonitoringTarget]) -> ContentAlert:
        if session.matches_found > 0:
            description = (f"Found {session.matches_found} potential match(es) "
                           f"across {len(targets)} sites.")
        else:
            description = (f"No matches found. Scanned {len(targets)} sites "
                           f"for {len(assets)} protected asset(s).")
        if session.pairs_failed:
            description += f" {session.pairs_failed} check(s) failed and were skipped."

        return ContentAlert(
            type=AlertType.SCAN_COMPLETE,
            severity=AlertSeverity.WARNING if session.matches_found > 0 else AlertSeverity.INFO,
            title="Scan Complete",
            description=description,
        )

    def _cancel(self, session: MonitoringSession,
                on_progress: Optional[ProgressCallback]) -> MonitoringSession:
        session.status = SessionStatus.CANCELLED
        session.completed_at = utcnow()
        session.current_target = None

        self.alerts.save(ContentAlert(
            type=AlertType.SCAN_COMPLETE,
            severity=AlertSeverity.WARNING if session.matches_found > 0 else AlertSeverity.INFO,
            title="Scan Cancelled",
            description=(f"Scan stopped after {session.targets_scanned} of "
                         f"{session.total_targets} checks with "
                         f"{session.matches_found} potential match(es)."),
        ))
        self.history.append(session)
        self._notify(on_progress, session)

        logger.info("Monitoring scan cancelled",
                    session_id=session.id,
                    targets_scanned=session.targets_scanned,
                    matches_found=session.matches_found)
        return session

    def _fail(self, session: MonitoringSession,
              on_progress: Optional[ProgressCallback], reason: str) -> MonitoringSession:
        session.status = SessionStatus.ERROR
        session.completed_at = utcnow()
        session.current_target = None
        session.error = reason

        self._notify(on_progress, session)
        try:
            self.history.append(session)
        except PersistenceError as e:
            # Keep the original failure as the reported reason
            logger.error("Failed to archive failed session", session_id=session.id, error=str(e))
        return session

    @staticmethod
    def _notify(on_progress: Optional[ProgressCallback], session: MonitoringSession) -> None:
        if on_progress is None:
            return
        try:
            on_progress(session.model_copy())
        except Exception as e:
            logger.warning("Progress callback failed", session_id=session.id, error=str(e))
