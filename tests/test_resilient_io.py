"""
Tests for atomic JSON writes.
"""
import json
import logging
import os
import stat
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from krocli.utils.resilient_io import read_json_document, safe_write_json

logger = logging.getLogger("krocli")


class TestSafeWriteJson:
    def test_writes_document(self, tmp_path):
        path = tmp_path / "doc.json"
        assert safe_write_json(path, {"a": 1}, logger) is None
        assert read_json_document(path) == {"a": 1}

    def test_replaces_existing_file_without_leftovers(self, tmp_path):
        path = tmp_path / "doc.json"
        path.write_text(json.dumps({"old": True}))

        assert safe_write_json(path, {"new": True}, logger) is None

        assert read_json_document(path) == {"new": True}
        assert [p.name for p in tmp_path.iterdir()] == ["doc.json"]

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_secure_permissions(self, tmp_path):
        path = tmp_path / "doc.json"
        safe_write_json(path, {"a": 1}, logger, secure_permissions=True)
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_returns_error_when_directory_missing(self, tmp_path):
        path = tmp_path / "missing" / "doc.json"

        error = safe_write_json(path, {"a": 1}, logger)

        assert isinstance(error, OSError)
        assert not path.exists()
