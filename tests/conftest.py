"""Pytest configuration and fixtures for CompileGraph CLI tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Callable, Dict, Generator

import pytest

from compilegraph_cli.config_manager import AnalysisSettings
from compilegraph_cli.manifest import SourceTreeManifest
from compilegraph_cli.scanner import AstScanner
from compilegraph_cli.session import AnalysisSession


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path_factory, monkeypatch):
    """Keep every test away from the user's ~/.compilegraph/config.toml."""
    home = tmp_path_factory.mktemp("compilegraph_home")
    monkeypatch.setattr("compilegraph_cli.config.BASE_DIR", home)
    monkeypatch.setattr("compilegraph_cli.config.CONFIG_FILE", home / "config.toml")


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def sample_project_path() -> Path:
    """Get path to sample test project."""
    return Path(__file__).parent / "fixtures" / "sample_project"


@pytest.fixture
def write_sources(temp_dir: Path) -> Callable[[Dict[str, str]], Path]:
    """Write ``{relative path: source}`` into the temp dir and return the dir."""

    def _write(sources: Dict[str, str]) -> Path:
        for rel_path, source in sources.items():
            path = temp_dir / rel_path
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(source, encoding="utf-8")
        return temp_dir

    return _write


@pytest.fixture
def scanner() -> AstScanner:
    return AstScanner()


@pytest.fixture
def sample_session(sample_project_path: Path) -> AnalysisSession:
    """A session over the sample project with the path cache filled inline."""
    session = AnalysisSession(
        SourceTreeManifest(sample_project_path),
        AnalysisSettings(background_cache=False),
    )
    session.build_graph_summary()
    return session
