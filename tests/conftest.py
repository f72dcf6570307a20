"""
Pytest configuration and fixtures for dataset explorer tests.

The ``study_store`` fixture holds a three-table dataset in an in-memory DuckDB:

    lab_results.sample_id -> samples.sample_id
    samples.patient_id    -> patients.patient_id

patients.status deliberately mixes a real category, an empty string, a null
and a literal "N/A" so the missing-value and N/A buckets are exercised.
"""

import sys
from pathlib import Path

import polars as pl
import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dataset_explorer.core.aggregation_service import AggregationService  # noqa: E402
from dataset_explorer.core.config_loader import EngineConfig  # noqa: E402
from dataset_explorer.core.relationships import Relationship, TableDescriptor  # noqa: E402
from dataset_explorer.storage.datastore import DataStore  # noqa: E402

DATASET_ID = "study1"

SAMPLES_TO_PATIENTS = Relationship("patient_id", "patients", "patient_id", kind="many-to-one")
LAB_RESULTS_TO_SAMPLES = Relationship("sample_id", "samples", "sample_id", kind="many-to-one")


@pytest.fixture(scope="session")
def project_root():
    """Return project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def patients_frame() -> pl.DataFrame:
    return pl.DataFrame(
        {
            "patient_id": ["P1", "P2", "P3", "P4", "P5", "P6"],
            "age": [34, 51, 29, 62, 45, None],
            "status": ["Active", "Inactive", "Active", "", "N/A", None],
            "region": ["North", "South", "North", "East", "South", "North"],
        }
    )


@pytest.fixture
def samples_frame() -> pl.DataFrame:
    return pl.DataFrame(
        {
            "sample_id": ["S1", "S2", "S3", "S4", "S5", "S6", "S7", "S8"],
            "patient_id": ["P1", "P1", "P2", "P3", "P3", "P4", "P5", "P6"],
            "sample_type": ["Blood", "Tissue", "Blood", "Blood", "Saliva", "Tissue", "Blood", "Tissue"],
            "purity": [0.9, 0.75, 0.6, 0.85, 0.5, 0.95, 0.7, 0.8],
        }
    )


@pytest.fixture
def lab_results_frame() -> pl.DataFrame:
    return pl.DataFrame(
        {
            "result_id": ["R1", "R2", "R3", "R4"],
            "sample_id": ["S1", "S2", "S4", "S6"],
            "measurement": [1.0, 2.0, 3.0, 4.0],
        }
    )


@pytest.fixture
def study_tables() -> list[TableDescriptor]:
    """Table descriptors matching the study dataset, without a store."""
    return [
        TableDescriptor(name="patients", row_count=6),
        TableDescriptor(name="samples", row_count=8, relationships=(SAMPLES_TO_PATIENTS,)),
        TableDescriptor(name="lab_results", row_count=4, relationships=(LAB_RESULTS_TO_SAMPLES,)),
    ]


@pytest.fixture
def store():
    """Empty in-memory DataStore."""
    datastore = DataStore(":memory:", pool_size=2)
    yield datastore
    datastore.close()


@pytest.fixture
def study_store(store, patients_frame, samples_frame, lab_results_frame):
    """DataStore holding the study dataset with declared relationships."""
    store.save_dataset(
        DATASET_ID,
        {"patients": patients_frame, "samples": samples_frame, "lab_results": lab_results_frame},
        relationships={"samples": [SAMPLES_TO_PATIENTS], "lab_results": [LAB_RESULTS_TO_SAMPLES]},
    )
    return store


@pytest.fixture
def engine_config() -> EngineConfig:
    return EngineConfig(category_limit=50, histogram_bins=20, max_workers=2, pool_size=2)


@pytest.fixture
def service(study_store, engine_config) -> AggregationService:
    return AggregationService(study_store, engine_config)
