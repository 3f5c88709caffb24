import os
import sys
import tempfile

import pytest

# Add the parent directory to sys.path so we can import main
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Keep test logs and the static mount out of the working directory
import config
config.LOG_DIR = tempfile.mkdtemp(prefix="file_store_test_logs_")
config.STATIC_DIR = os.path.join(config.LOG_DIR, "no_static")

from app.services.storage_manager import StorageManager


@pytest.fixture
def data_dir(tmp_path):
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def temp_dir(tmp_path):
    path = tmp_path / "temp"
    path.mkdir()
    return path


@pytest.fixture
def storage_manager(data_dir, temp_dir):
    return StorageManager(data_dir, temp_dir)
