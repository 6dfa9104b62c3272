#!/usr/bin/env python3
"""
Unit tests for main.py command line
"""

import unittest
import tempfile
import shutil
import io
from contextlib import redirect_stdout, redirect_stderr
from pathlib import Path
from unittest.mock import patch

# Add parent directory to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from config_handler import ConfigHandler
from main import main


class TestMain(unittest.TestCase):
    """Tests for the command line entry point."""

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.config_dir = self.temp_dir / "config"
        self.ksp_root = self.temp_dir / "ksp"
        (self.ksp_root / "GameData" / "Manual").mkdir(parents=True)
        (self.ksp_root / "GameData" / "Manual" / "manual.cfg").write_text("x")
        patchers = [
            patch.object(ConfigHandler, '_get_config_dir', return_value=self.config_dir),
            patch('logger.setup_logging'),
        ]
        for patcher in patchers:
            patcher.start()
            self.addCleanup(patcher.stop)

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def run_main(self, *argv):
        out = io.StringIO()
        with redirect_stdout(out), redirect_stderr(io.StringIO()):
            code = main(list(argv))
        return code, out.getvalue()

    def test_invalid_root(self):
        code, _ = self.run_main("--ksp-root", str(self.temp_dir / "missing"), "list")
        self.assertEqual(code, 2)

    def test_list_empty(self):
        code, out = self.run_main("--ksp-root", str(self.ksp_root), "list")
        self.assertEqual(code, 0)
        self.assertIn("No mods.", out)

    def test_scan_saves_catalog(self):
        code, out = self.run_main("--ksp-root", str(self.ksp_root), "scan")
        self.assertEqual(code, 0)
        self.assertIn("1 mods added", out)
        self.assertTrue((self.ksp_root / "KSPModManager.cfg").exists())

        code, out = self.run_main("--ksp-root", str(self.ksp_root), "list")
        self.assertIn("Manual", out)

    def test_broken_catalog(self):
        catalog = self.temp_dir / "broken.cfg"
        catalog.write_text("<KSPModManager>")
        code, _ = self.run_main("--ksp-root", str(self.ksp_root), "--catalog", str(catalog), "list")
        self.assertEqual(code, 1)


if __name__ == "__main__":
    unittest.main()
