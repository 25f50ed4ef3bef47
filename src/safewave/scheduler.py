"""
Background collection loop: periodic national scans and a coarser retention sweep.

Each job runs on its own thread and waits out its interval only after a run
returns, so two runs of the same job never overlap. Stopping sets a shared
event; a run in progress finishes its current transaction before the thread
exits.
"""
import logging
import threading
from typing import Callable, Optional

from safewave.config import get_settings, setup_logging
from safewave.data.sources.loader import GdacsLoader, OpenMeteoLoader
from safewave.data.store.store import SafeWaveStore
from safewave.scan import NationalScan
from safewave.service import SafeWaveService

logger = logging.getLogger(__name__)


class PeriodicJob:
    def __init__(self, name: str, func: Callable[[], object], interval_s: float,
                 stop_event: threading.Event, run_immediately: bool = True):
        self.name = name
        self.func = func
        self.interval_s = interval_s
        self.run_immediately = run_immediately
        self._stop = stop_event
        self._thread: Optional[threading.Thread] = None
        self.runs = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._thread = threading.Thread(target=self._loop, name=f'safewave-{self.name}', daemon=True)
        self._thread.start()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def run_once(self) -> None:
        try:
            self.func()
        except Exception:
            # a failed run must not kill the schedule
            logger.exception("Job %s failed", self.name)
        finally:
            self.runs += 1

    def _loop(self) -> None:
        if not self.run_immediately and self._stop.wait(self.interval_s):
            return
        while not self._stop.is_set():
            self.run_once()
            if self._stop.wait(self.interval_s):
                break
        logger.debug("Job %s stopped after %d runs", self.name, self.runs)


class RetentionSweep:
    """
    Purge expired alerts and stale, non-favorite history.
    """
    def __init__(self, store: SafeWaveStore, history_days: int = 10):
        self.store = store
        self.history_days = history_days

    def __call__(self) -> None:
        alerts = self.store.clear_expired_alerts()
        history = self.store.delete_old_history(self.history_days)
        logger.info("Retention sweep: %s expired alerts, %s stale history entries",
                    alerts.data if alerts.success else alerts.error,
                    history.data if history.success else history.error)


class CollectionScheduler:
    """
    Owns the scan and retention jobs; start() and stop() act on both as a unit.
    """
    def __init__(self, scan: Callable[..., object], sweep: Callable[[], object],
                 scan_interval_s: float, retention_interval_s: float):
        self._stop = threading.Event()
        self.scan_job = PeriodicJob('scan', lambda: scan(should_stop=self._stop.is_set),
                                    scan_interval_s, self._stop)
        self.retention_job = PeriodicJob('retention', sweep, retention_interval_s, self._stop)

    @property
    def running(self) -> bool:
        return self.scan_job.running or self.retention_job.running

    def start(self) -> None:
        self._stop.clear()
        self.retention_job.start()
        self.scan_job.start()
        logger.info("Collection scheduler started (scan every %.0fs, retention every %.0fs)",
                    self.scan_job.interval_s, self.retention_job.interval_s)

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        self.scan_job.join(timeout)
        self.retention_job.join(timeout)
        logger.info("Collection scheduler stopped")


def main():
    settings = get_settings()
    setup_logging(settings)

    store = SafeWaveStore(settings.db_url, echo=settings.db_echo, province_rain_cap=settings.province_rain_cap)
    store.open()
    service = SafeWaveService(store, cluster_radius_km=settings.cluster_radius_km)
    loader_kwargs = dict(
        timeout=settings.request_timeout_s,
        retries=settings.request_retries,
        backoff=settings.request_backoff_s,
    )
    scan = NationalScan(
        service,
        weather_loader=OpenMeteoLoader(settings.open_meteo_url, **loader_kwargs),
        storm_loader=GdacsLoader(settings.gdacs_url, **loader_kwargs),
        alert_ttl_hours=settings.alert_ttl_hours,
        request_delay_s=settings.request_delay_s,
    )
    scheduler = CollectionScheduler(
        scan.run,
        RetentionSweep(store, settings.history_days),
        settings.scan_interval_s,
        settings.retention_interval_s,
    )
    scheduler.start()
    try:
        while scheduler.running:
            scheduler.scan_job.join(1.0)
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        scheduler.stop()
        store.close()


if __name__ == '__main__':
    main()
