# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

from pathlib import Path

import pytest

from precompiler.tests.builders import ProjectBuilder


@pytest.fixture
def project(tmp_path: Path) -> ProjectBuilder:
	return ProjectBuilder(tmp_path / "src")
