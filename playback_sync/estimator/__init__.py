"""Synchronization Estimator: offset learning and timestamp correction."""

from playback_sync.estimator.estimator import AnalysisReport, SyncEstimator

__all__ = ["AnalysisReport", "SyncEstimator"]
