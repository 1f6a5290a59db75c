"""
Shared test fixtures for RegionShuffle test suite.
"""

import tempfile
from pathlib import Path

import numpy as np
import pytest

from regionshuffle.core.coverage import CoverageIndexBuilder
from regionshuffle.core.genome import Genome
from regionshuffle.core.intervals import GenomicInterval, IntervalSet

# ============================================================================
# Genomes and interval sets
# ============================================================================


@pytest.fixture
def genome():
    """Three chromosome toy genome, file order is the genome order."""
    return Genome({"chr1": 1000, "chr2": 500, "chr3": 300}, build="toy")


@pytest.fixture
def small_genome():
    """Single chromosome genome for coverage scenarios."""
    return Genome({"chr1": 100}, build="small")


@pytest.fixture
def background(genome):
    """Merged uniform background with a few disjoint blocks."""
    return IntervalSet.merging(genome, [
        GenomicInterval("chr1", 0, 200),
        GenomicInterval("chr1", 400, 700),
        GenomicInterval("chr2", 100, 400),
    ])


@pytest.fixture
def input_regions():
    return [
        GenomicInterval("chr1", 10, 60),
        GenomicInterval("chr1", 450, 470),
        GenomicInterval("chr2", 150, 180),
    ]


@pytest.fixture
def coverage_20(small_genome):
    """20 covered positions on chr1 at even offsets 0, 2, ..., 38."""
    return CoverageIndexBuilder(small_genome).add_many("chr1", np.arange(0, 40, 2)).build()


@pytest.fixture
def rng():
    return np.random.default_rng(42)


# ============================================================================
# Temporary files
# ============================================================================


@pytest.fixture
def temp_dir():
    """Provide a temporary directory that gets cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def chrom_sizes_file(temp_dir):
    path = temp_dir / "toy.chrom.sizes"
    path.write_text("chr1\t1000\nchr2\t500\nchr3\t300\n")
    return path


@pytest.fixture
def regions_bed_file(temp_dir):
    """Input regions, one on an unknown contig."""
    path = temp_dir / "regions.bed"
    path.write_text(
        "track name=regions\n"
        "chr1\t10\t60\tr1\t0\t-\n"
        "chr1\t450\t470\tr2\t0\t+\n"
        "chr2\t150\t180\tr3\t0\t+\n"
        "chrUn_gl000220\t5\t10\tr4\t0\t+\n"
    )
    return path


@pytest.fixture
def loi_dir(temp_dir):
    """Folder with two LOI BED files and one file filtered out by suffix."""
    folder = temp_dir / "loi"
    folder.mkdir()
    (folder / "enhancers.bed").write_text("chr1\t0\t100\nchr1\t50\t120\nchr2\t140\t200\n")
    (folder / "repeats.bed").write_text("chr3\t0\t50\n")
    (folder / "notes.txt").write_text("chr1\t0\t10\n")
    return folder


@pytest.fixture
def coverage_file(temp_dir):
    """1-based covered positions table with a header and an extra column."""
    path = temp_dir / "cpg.tsv"
    lines = ["chr\tpos\tbeta"]
    lines += [f"chr1\t{p}\t0.5" for p in range(1, 41, 2)]
    path.write_text("\n".join(lines) + "\n")
    return path


@pytest.fixture
def small_chrom_sizes_file(temp_dir):
    path = temp_dir / "small.chrom.sizes"
    path.write_text("chr1\t100\n")
    return path


# ============================================================================
# Database fixtures
# ============================================================================


@pytest.fixture
def test_db_url():
    """In-memory SQLite database URL for testing."""
    return "sqlite:///:memory:"


@pytest.fixture
def db_engine(test_db_url):
    """Create a test database engine.

    Uses StaticPool so that all connections share the same in-memory
    SQLite database (otherwise each connection gets its own empty DB).
    """
    from sqlalchemy import create_engine
    from sqlalchemy.pool import StaticPool
    from regionshuffle.models.database import Base

    engine = create_engine(
        test_db_url,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session(db_engine):
    """Create a test database session."""
    from sqlalchemy.orm import sessionmaker

    Session = sessionmaker(bind=db_engine)
    session = Session()
    yield session
    session.close()


# ============================================================================
# FastAPI test client
# ============================================================================


@pytest.fixture
def api_client(db_engine, temp_dir, monkeypatch):
    """Create a FastAPI test client with a test database and results folder."""
    from fastapi.testclient import TestClient
    from sqlalchemy.orm import sessionmaker

    from regionshuffle.config import settings
    from regionshuffle.main import app, get_db, get_session_factory

    monkeypatch.setattr(settings, "results_dir", temp_dir / "results")

    TestSession = sessionmaker(bind=db_engine)

    def override_get_db():
        db = TestSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: TestSession
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
