"""
Pytest configuration for the rt11dir test suite.

    python -m pytest                     # everything but real images
    RT11_TEST_IMAGE=rt11.dsk python -m pytest -m realimage

Tests marked ``realimage`` open the disk image named by the
RT11_TEST_IMAGE environment variable read-only, and are skipped when it
is unset.
"""

import os
import sys

import pytest

# Flat layout: make the tool modules importable however pytest is run.
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

REAL_IMAGE_ENV = "RT11_TEST_IMAGE"


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers",
        "cli: end-to-end runs of the rt11dir command line")
    config.addinivalue_line("markers",
        f"realimage: tests against the image named by ${REAL_IMAGE_ENV}")


def pytest_collection_modifyitems(config, items):
    if os.environ.get(REAL_IMAGE_ENV):
        return
    skip = pytest.mark.skip(reason=f"{REAL_IMAGE_ENV} not set")
    for item in items:
        if "realimage" in item.keywords:
            item.add_marker(skip)


def pytest_report_header(config):
    image = os.environ.get(REAL_IMAGE_ENV)
    return f"rt11dir: real image = {image or '(none)'}"
