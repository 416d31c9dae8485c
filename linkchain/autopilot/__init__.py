"""Autopilot glue: queue tick, stale-work recovery, extraction and notices."""

from linkchain.autopilot.extractor import ExtractedPage, ExtractionError, LinkExtractor
from linkchain.autopilot.notifier import TelegramNotifier
from linkchain.autopilot.recovery import recover_stale_work
from linkchain.autopilot.tick import AUTOPILOT_TAG, AutoPilot

__all__ = [
    "AUTOPILOT_TAG",
    "AutoPilot",
    "ExtractedPage",
    "ExtractionError",
    "LinkExtractor",
    "TelegramNotifier",
    "recover_stale_work",
]
