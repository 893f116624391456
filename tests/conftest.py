import pytest

from tabletasks.core.config import Settings
from tabletasks.core.runtime import build_runtime
from tabletasks.io.storage import LocalBlobStore

RUNNER_TOKEN = "test-runner-token"

PEOPLE_CSV = b"Name,Age\nAnn,30\nAnn,30\nBob,\n"


class SpyBlobStore(LocalBlobStore):
    """Local store that records every key read."""

    def __init__(self, base_dir):
        super().__init__(base_dir)
        self.reads = []

    def get(self, key):
        self.reads.append(key)
        return super().get(key)


def make_settings(**overrides) -> Settings:
    cfg = Settings()
    cfg.DATABASE_URL = ""
    cfg.STORAGE_BACKEND = "local"
    cfg.INTERNAL_RUNNER_TOKEN = RUNNER_TOKEN
    for key, value in overrides.items():
        setattr(cfg, key, value)
    return cfg


@pytest.fixture
def blobs(tmp_path):
    return SpyBlobStore(str(tmp_path / "blobs"))


@pytest.fixture
def runtime(blobs):
    return build_runtime(make_settings(), blobs=blobs)
