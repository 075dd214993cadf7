"""Tests for per-provider aggregation and the cross-region matrices."""

from azure_model_regions import (
    RegionResult,
    aggregate_by_provider,
    build_model_matrix,
    build_region_matrix,
)


class TestAggregateByProvider:
    """Tests for aggregate_by_provider."""

    def test_scenario(self, sample_records):
        summaries = aggregate_by_provider(sample_records, "eastus")

        assert [s.provider for s in summaries] == ["Meta", "OpenAI"]
        meta, openai = summaries

        assert openai.region == "eastus"
        assert openai.total_models == 3
        assert openai.unique_model_names == 2
        assert openai.ga_count == 2
        assert openai.preview_count == 1
        assert openai.stable_count == 0
        assert openai.deployment_types == ("GlobalStandard", "Standard")
        assert openai.top_model == "gpt-4o"
        assert len(openai.models) == 3

        assert meta.total_models == 1
        assert meta.stable_count == 1
        assert meta.top_model == "Llama-3.3-70B-Instruct"

    def test_empty_input(self):
        assert aggregate_by_provider([], "eastus") == []

    def test_idempotent(self, sample_records):
        assert aggregate_by_provider(sample_records, "eastus") == aggregate_by_provider(sample_records, "eastus")

    def test_deprecated_not_counted_separately(self, make_record):
        records = [
            make_record(name="gpt-35-turbo", version="0301", lifecycle="Deprecated"),
            make_record(name="gpt-35-turbo", version="0613", lifecycle="Deprecated"),
            make_record(name="gpt-4o", lifecycle="GenerallyAvailable"),
        ]

        (summary,) = aggregate_by_provider(records, "westus")

        assert summary.total_models == 3
        assert summary.ga_count + summary.stable_count + summary.preview_count == 1

    def test_top_model_tie_goes_to_first_seen(self, make_record):
        records = [
            make_record(name="o1", skus=("Standard",)),
            make_record(name="o3-mini", skus=("GlobalStandard",)),
            make_record(name="gpt-4o", skus=("Standard", "GlobalStandard")),
            make_record(name="gpt-4.1", skus=("DataZoneStandard", "GlobalStandard")),
        ]

        (summary,) = aggregate_by_provider(records, "eastus")

        assert summary.top_model == "gpt-4o"
        assert summary.deployment_types == ("DataZoneStandard", "GlobalStandard", "Standard")

    def test_invariants_hold(self, sample_records):
        for summary in aggregate_by_provider(sample_records, "eastus"):
            assert summary.unique_model_names <= summary.total_models
            assert summary.ga_count + summary.stable_count + summary.preview_count <= summary.total_models

    def test_does_not_mutate_input(self, sample_records):
        before = list(sample_records)
        aggregate_by_provider(sample_records, "eastus")
        assert sample_records == before


class TestRegionMatrix:
    """Tests for the provider x region comparison matrix."""

    def test_fills_missing_cells_with_zero(self, sample_records):
        eastus = RegionResult("eastus", sample_records, aggregate_by_provider(sample_records, "eastus"))
        openai_only = [r for r in sample_records if r.provider_format == "OpenAI"]
        westus = RegionResult("westus", openai_only, aggregate_by_provider(openai_only, "westus"))
        failed = RegionResult("japaneast", error="API request failed: 403 Forbidden")

        matrix = build_region_matrix([eastus, westus, failed])

        assert matrix == {
            "Meta": {"eastus": 1, "westus": 0, "japaneast": 0},
            "OpenAI": {"eastus": 3, "westus": 3, "japaneast": 0},
        }

    def test_empty(self):
        assert build_region_matrix([]) == {}


class TestModelMatrix:
    """Tests for model name -> regions mapping."""

    def test_lists_regions_in_request_order(self, sample_records, make_record):
        west = [make_record(name="gpt-4o")]
        results = [
            RegionResult("westus", west),
            RegionResult("eastus", sample_records),
        ]

        matrix = build_model_matrix(results)

        assert matrix == {
            "Llama-3.3-70B-Instruct": ["eastus"],
            "gpt-4o": ["westus", "eastus"],
            "gpt-4o-mini": ["eastus"],
        }
