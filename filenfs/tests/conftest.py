"""Fixtures shared by the tests, built around an in-memory storage service."""

import pytest

from filenfs.filesystem import Filesystem
from filenfs.storage import StorageClient, StorageService
from filenfs.tests.helpers import CHUNK_SIZE, EMAIL, PASSWORD


@pytest.fixture
def service():
    return StorageService({EMAIL: PASSWORD})


@pytest.fixture
def client(service):
    return StorageClient.connect(service, EMAIL, PASSWORD, chunk_size=CHUNK_SIZE)


@pytest.fixture
def fs(client):
    return Filesystem("remote", "/", client)
