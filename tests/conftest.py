"""Test configuration for pytest."""

import logging
import os

import pytest

from tests.helpers.media_factory import make_pattern_image


@pytest.fixture(autouse=True)
def configure_test_logging():
    """Configure logging for tests to be minimal."""
    os.environ['TAGSAVER_LOG_LEVEL'] = 'WARNING'

    logging.getLogger().setLevel(logging.WARNING)

    # The media decoder warns on every corrupt fixture file
    for logger_name in ['tagsaver.dedup.media', 'tagsaver.dedup.hash']:
        logging.getLogger(logger_name).setLevel(logging.ERROR)


@pytest.fixture
def pattern_image():
    return make_pattern_image()
