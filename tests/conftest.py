"""Shared test fixtures."""

import random
import shutil
import tempfile
from pathlib import Path

import pytest

from config.settings import (
    AppConfig,
    BackgroundRemovalConfig,
    GenerationConfig,
    PathConfig,
    StorageConfig,
)
from core.cascade import ModelCascade
from core.catalog import ProductCatalog
from core.ledger import GenerationLedger
from core.storage import LocalObjectStore
from core.studio import StudioService

from tests.helpers import FakeGeminiClient, StubFetcher


@pytest.fixture
def tmp_dir():
    d = Path(tempfile.mkdtemp())
    yield d
    shutil.rmtree(d, ignore_errors=True)


@pytest.fixture
def test_config(tmp_dir):
    paths = PathConfig(
        root=tmp_dir,
        catalog_db=tmp_dir / "catalog" / "products.db",
        ledger_db=tmp_dir / "catalog" / "ledger.db",
        progress_db=tmp_dir / "temp" / "bulk.db",
        storage_dir=tmp_dir / "storage",
        log_file=tmp_dir / "test.log",
    )
    cfg = AppConfig(
        paths=paths,
        generation=GenerationConfig(
            api_key="test-key",
            model_candidates=("model-a", "model-b"),
        ),
        storage=StorageConfig(backend="local", bucket="", public_base_url="http://media.test"),
        bg=BackgroundRemovalConfig(enabled=False),
        environment="development",
    )
    cfg.paths.ensure()
    return cfg


@pytest.fixture
def catalog(test_config):
    c = ProductCatalog(test_config.paths.catalog_db)
    yield c
    c.close()


@pytest.fixture
def ledger(test_config):
    lg = GenerationLedger(test_config.paths.ledger_db)
    yield lg
    lg.close()


@pytest.fixture
def store(test_config):
    return LocalObjectStore(test_config.storage, test_config.paths.storage_dir)


@pytest.fixture
def make_service(test_config, catalog, ledger, store):
    """Factory: ``make_service(script, images)`` → (service, fake client)."""

    def _make(script, images=None, **kwargs):
        client = FakeGeminiClient(script)
        service = StudioService(
            app=test_config,
            cascade=ModelCascade(client, test_config.generation.model_candidates),
            store=store,
            ledger=ledger,
            catalog=catalog,
            fetcher=StubFetcher(images),
            rng=random.Random(7),
            **kwargs,
        )
        return service, client

    return _make
