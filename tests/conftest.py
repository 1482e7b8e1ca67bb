"""Shared pytest fixtures for all tests."""

import json
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from cli.config import Config
from uploader.database import init_database


@pytest.fixture
def test_db(monkeypatch) -> Generator[Path, None, None]:
    """
    Create a temporary test database for each test.
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        monkeypatch.setattr("uploader.config.DATABASE_PATH", str(db_path))
        init_database()
        yield db_path


@pytest.fixture
def temp_config_dir(tmp_path):
    """
    Create temporary config directory.

    Args:
        tmp_path: pytest tmp_path fixture

    Returns:
        Path to temporary .foldervault directory
    """
    config_dir = tmp_path / '.foldervault'
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def temp_config(temp_config_dir):
    """
    Create temporary config instance pointing at a fake uploader.
    """
    config_path = temp_config_dir / 'config.json'
    config_path.write_text(json.dumps({
        'uploader_url': 'http://test:3000',
        'max_retries': 2,
    }))
    return Config(config_path)


@pytest.fixture
def sample_folder(tmp_path):
    """
    Create a small directory tree on disk.

    Layout:
        photos/a.txt
        photos/b/c.txt
        photos/b/d/e.bin
    """
    root = tmp_path / 'photos'
    (root / 'b' / 'd').mkdir(parents=True)
    (root / 'a.txt').write_text('alpha')
    (root / 'b' / 'c.txt').write_text('charlie')
    (root / 'b' / 'd' / 'e.bin').write_bytes(b'\x00\x01\x02')
    return root

