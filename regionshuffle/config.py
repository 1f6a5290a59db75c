"""
Configuration settings for RegionShuffle.

Holds application paths, API/database options and the analysis defaults
used when a request does not override them.
"""

from pathlib import Path
from typing import List, Optional
from pydantic_settings import BaseSettings
from pydantic import Field


class AnalysisOptions:
    """Supported analysis choices."""

    METRICS = {
        "overlap": {
            "column": "overlap",
            "description": "Number of 'a' regions overlapping at least one 'b' region",
        },
        "intersection": {
            "column": "intersection_number",
            "description": "Number of non-empty fragments of 'a' AND 'b'",
        },
    }

    HYPOTHESES = {
        "greater": "Input regions overlap LOI more than expected by chance",
        "less": "Input regions overlap LOI less than expected by chance",
        "two-sided": "Input regions overlap LOI differently than expected by chance",
    }

    BACKGROUND_TYPES = {
        "uniform": "Sample by basepair length from BED background (whole genome if not given)",
        "coverage": "Sample by number of covered positions (e.g. CpG offsets) from coverage table",
        "coverage_bed": "Convert coverage table to flanked BED background and sample by length",
    }


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "RegionShuffle"
    app_version: str = "0.1.0"
    debug: bool = False

    # Paths
    base_dir: Path = Field(default_factory=lambda: Path(__file__).parent.parent)
    data_dir: Path = Field(default_factory=lambda: Path(__file__).parent.parent / "data")
    results_dir: Path = Field(default_factory=lambda: Path(__file__).parent.parent / "results")

    # Database
    database_url: str = "sqlite:///./regionshuffle.db"

    # Simulation defaults
    default_simulations: int = 100_000
    default_chunk_size: int = 50_000
    default_region_set_max_retries: int = 100
    default_single_region_max_retries: int = 100
    default_parallelism: Optional[int] = None  # None -> os.cpu_count()
    default_end_position_shift: int = 2
    default_bed_background_flank: int = 50

    # Test defaults
    default_hypothesis: str = "greater"
    default_metric: str = "overlap"
    default_fdr_threshold: float = 0.05

    # Server
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    def ensure_directories(self):
        """Create necessary directories if they don't exist."""
        for dir_path in [self.data_dir, self.results_dir]:
            dir_path.mkdir(parents=True, exist_ok=True)

    def supported_hypotheses(self) -> List[str]:
        return list(AnalysisOptions.HYPOTHESES.keys())

    def get_job_output_dir(self, job_id: str) -> Path:
        """Get results directory for a job."""
        return self.results_dir / job_id


# Global settings instance
settings = Settings()
