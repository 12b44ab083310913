"""Shared pytest fixtures."""

import pytest

from tests.fakes import RecordingSaver


@pytest.fixture
def saver() -> RecordingSaver:
    return RecordingSaver()
