"""
Capture Import Layer.

This package turns material recorded outside the engine, such as HAR exports
and static web pages, into captured credentials and stream descriptors.
"""

from .har import HarImportResult, import_har
from .page import fetch_and_scan, scan_page

__all__ = ["HarImportResult", "fetch_and_scan", "import_har", "scan_page"]
