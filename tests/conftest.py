"""Pytest configuration and fixtures for azure-model-regions tests."""

import pytest

from azure_model_regions import CLOUD_ENVIRONMENTS, ModelRecord


SUBSCRIPTION_ID = "00000000-0000-0000-0000-000000000000"
TOKEN = "test-token"


@pytest.fixture
def environment():
    """The public Azure cloud."""
    return CLOUD_ENVIRONMENTS["AzureCloud"]


@pytest.fixture
def catalog_url():
    """Build the first-page catalog URL (with api-version) for a region."""
    def _url(region: str = "eastus") -> str:
        return (
            "https://management.azure.com/subscriptions/"
            f"{SUBSCRIPTION_ID}/providers/Microsoft.CognitiveServices"
            f"/locations/{region}/models?api-version=2024-10-01"
        )
    return _url


@pytest.fixture
def make_entry():
    """Build a raw catalog entry in the shape the API returns."""
    def _entry(
        fmt: str = "OpenAI",
        name: str = "gpt-4o",
        version: str = "2024-11-20",
        lifecycle: str = "GenerallyAvailable",
        skus: tuple[str, ...] = ("Standard",),
        max_capacity: int | None = 1000,
        deprecation: str | None = None,
    ) -> dict:
        model = {
            "format": fmt,
            "name": name,
            "version": version,
            "lifecycleStatus": lifecycle,
            "maxCapacity": max_capacity,
            "skus": [{"name": s, "usageName": f"{fmt}.{s}.{name}"} for s in skus],
            "capabilities": {"chatCompletion": "true", "embeddings": "false"},
        }
        if deprecation:
            model["deprecation"] = {"inference": deprecation}
        return {"kind": fmt, "skuName": "S0", "model": model}
    return _entry


@pytest.fixture
def make_record():
    """Build a ModelRecord with sensible defaults."""
    def _record(
        provider: str = "OpenAI",
        name: str = "gpt-4o",
        version: str = "1",
        lifecycle: str = "GenerallyAvailable",
        skus: tuple[str, ...] = ("Standard",),
    ) -> ModelRecord:
        return ModelRecord(
            provider_format=provider,
            model_name=name,
            model_version=version,
            lifecycle_status=lifecycle,
            deployment_skus=frozenset(skus),
        )
    return _record


@pytest.fixture
def sample_records(make_record):
    """Three OpenAI records and one Meta record."""
    return [
        make_record("OpenAI", "gpt-4o", "2024-05-13", "GenerallyAvailable", ("Standard", "GlobalStandard")),
        make_record("OpenAI", "gpt-4o", "2024-11-20", "GenerallyAvailable", ("Standard",)),
        make_record("OpenAI", "gpt-4o-mini", "2024-07-18", "Preview", ("GlobalStandard",)),
        make_record("Meta", "Llama-3.3-70B-Instruct", "5", "Stable", ("GlobalStandard",)),
    ]
