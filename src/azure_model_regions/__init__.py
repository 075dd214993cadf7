#!/usr/bin/env python3
"""
Azure Model Regions - Report AI model availability across Azure regions.

Queries the Cognitive Services model catalog for each region, groups the
results by provider and renders per-region summaries plus a cross-region
comparison matrix.
"""

import argparse
import csv
import io
import json
import math
import os
import random
import re
import subprocess
import sys
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from importlib.metadata import version as get_version
from pathlib import Path
from typing import TypeVar

import httpx

__version__ = get_version("azure-model-regions")

# Catalog endpoint
PROVIDER_NAMESPACE = "Microsoft.CognitiveServices"
API_VERSION = "2024-10-01"
REQUEST_TIMEOUT_SECONDS = 60

# HTTP client (initialized in main for connection reuse)
_http_client: httpx.Client | None = None

# Exit codes
EXIT_SUCCESS = 0
EXIT_PARTIAL = 1
EXIT_ERROR = 2

# Retry configuration
DEFAULT_MAX_RETRIES = 3

# Safety limit to prevent infinite pagination loops
MAX_PAGES = 100

# Lifecycle statuses reported by the catalog
LIFECYCLE_GA = "GenerallyAvailable"
LIFECYCLE_STABLE = "Stable"
LIFECYCLE_PREVIEW = "Preview"
LIFECYCLE_DEPRECATED = "Deprecated"
LIFECYCLE_STATUSES = (LIFECYCLE_GA, LIFECYCLE_STABLE, LIFECYCLE_PREVIEW, LIFECYCLE_DEPRECATED)

EXPORT_SUFFIXES = {".csv", ".json"}

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Cloud environments and region presets
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CloudEnvironment:
    """An Azure sovereign cloud and its Resource Manager endpoint."""

    name: str
    resource_manager: str


CLOUD_ENVIRONMENTS = {
    "AzureCloud": CloudEnvironment("AzureCloud", "https://management.azure.com"),
    "AzureUSGovernment": CloudEnvironment("AzureUSGovernment", "https://management.usgovcloudapi.net"),
    "AzureChinaCloud": CloudEnvironment("AzureChinaCloud", "https://management.chinacloudapi.cn"),
}
DEFAULT_CLOUD = "AzureCloud"

REGION_PRESETS = {
    "us": ["eastus", "eastus2", "centralus", "northcentralus", "southcentralus", "westus", "westus3"],
    "europe": ["westeurope", "northeurope", "swedencentral", "francecentral", "germanywestcentral",
               "uksouth", "switzerlandnorth", "norwayeast"],
    "asia-pacific": ["australiaeast", "japaneast", "koreacentral", "southeastasia", "southindia",
                     "eastasia"],
    "popular": ["eastus", "eastus2", "westus3", "swedencentral", "westeurope", "japaneast",
                "australiaeast"],
}
DEFAULT_PRESET = "popular"


# ---------------------------------------------------------------------------
# Logging helpers - progress/debug to stderr, report to stdout
# ---------------------------------------------------------------------------

class Logger:
    """Simple logger that respects quiet/verbose flags."""

    def __init__(self, quiet: bool = False, verbose: bool = False):
        self.quiet = quiet
        self.verbose = verbose

    def progress(self, msg: str) -> None:
        """Progress messages (stderr) - suppressed by --quiet."""
        if not self.quiet:
            print(msg, file=sys.stderr)

    def detail(self, msg: str) -> None:
        """Verbose details (stderr) - only shown with --verbose."""
        if self.verbose:
            print(f"  [verbose] {msg}", file=sys.stderr)

    def warn(self, msg: str) -> None:
        """Warnings (stderr) - always shown."""
        print(f"Warning: {msg}", file=sys.stderr)

    def error(self, msg: str) -> None:
        """Errors (stderr) - always shown."""
        print(f"Error: {msg}", file=sys.stderr)


# Global logger instance, set in main()
log = Logger()


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class APIError(Exception):
    """Raised when a catalog API request fails.

    ``status_code`` is the HTTP status when the server answered, and
    ``retry_after`` the parsed Retry-After header in seconds, if any.
    """

    def __init__(self, message: str, status_code: int | None = None, retry_after: int | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after


class CredentialError(Exception):
    """Raised when the subscription or access token cannot be resolved."""
    pass


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ModelRecord:
    """One (provider, model, version) entry from a region's catalog."""

    provider_format: str
    model_name: str
    model_version: str
    lifecycle_status: str
    max_capacity: int | None = None
    deployment_skus: frozenset[str] = frozenset()
    capabilities: dict[str, bool] = field(default_factory=dict, compare=False, hash=False)
    deprecation_date: str | None = None

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.provider_format, self.model_name, self.model_version)


@dataclass(frozen=True)
class ProviderSummary:
    """Aggregate statistics for one provider within one region."""

    provider: str
    region: str
    total_models: int
    unique_model_names: int
    ga_count: int
    stable_count: int
    preview_count: int
    deployment_types: tuple[str, ...]
    top_model: str
    models: tuple[ModelRecord, ...] = field(default=(), repr=False)


@dataclass(frozen=True)
class ModelFilters:
    """Optional filter dimensions; an empty dimension matches everything."""

    providers: frozenset[str] = frozenset()
    model_patterns: tuple[str, ...] = ()
    lifecycles: frozenset[str] = frozenset()
    deployment_types: frozenset[str] = frozenset()


@dataclass
class RegionResult:
    """Outcome of processing one region; ``error`` is set when the fetch failed."""

    region: str
    records: list[ModelRecord] = field(default_factory=list)
    summaries: list[ProviderSummary] = field(default_factory=list)
    error: str | None = None


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------

def _run_az(args: list[str]) -> str:
    """Run an Azure CLI command and return its stripped stdout."""
    try:
        completed = subprocess.run(
            ["az", *args],
            capture_output=True,
            text=True,
            check=True,
        )
    except FileNotFoundError:
        raise CredentialError("Azure CLI ('az') not found. Install it or set the environment variables.")
    except subprocess.CalledProcessError as e:
        stderr = (e.stderr or "").strip()
        raise CredentialError(f"'az {' '.join(args)}' failed: {stderr or e.returncode}")
    return completed.stdout.strip()


def get_subscription_id(explicit: str | None = None) -> str:
    """
    Resolve the subscription id using this precedence:
    1. explicit value (--subscription)
    2. AZURE_SUBSCRIPTION_ID environment variable
    3. the Azure CLI's current account (az account show)
    """
    if explicit:
        return explicit
    if subscription := os.environ.get("AZURE_SUBSCRIPTION_ID"):
        return subscription

    subscription = _run_az(["account", "show", "--query", "id", "-o", "tsv"])
    if not subscription:
        raise CredentialError("No subscription id returned by 'az account show'")
    return subscription


def get_access_token(environment: CloudEnvironment) -> str:
    """
    Resolve a Resource Manager bearer token:
    1. AZURE_ACCESS_TOKEN environment variable
    2. az account get-access-token for the environment's endpoint
    """
    if token := os.environ.get("AZURE_ACCESS_TOKEN"):
        return token

    token = _run_az([
        "account", "get-access-token",
        "--resource", environment.resource_manager,
        "--query", "accessToken",
        "-o", "tsv",
    ])
    if not token:
        raise CredentialError("No access token returned by 'az account get-access-token'")
    return token


# ---------------------------------------------------------------------------
# Retry
# ---------------------------------------------------------------------------

RETRYABLE_MESSAGE_PATTERN = re.compile(
    r"429|Too Many Requests|503|Service Unavailable"
    r"|timed? ?out|connection (?:was )?reset|connection refused",
    re.IGNORECASE,
)

RETRYABLE_EXCEPTIONS = (httpx.TransportError, ConnectionError, TimeoutError)


def is_retryable(error: BaseException) -> bool:
    """Classify an error as transient (worth retrying) or permanent."""
    if isinstance(error, RETRYABLE_EXCEPTIONS):
        return True
    if getattr(error, "status_code", None) in (429, 503):
        return True
    return bool(RETRYABLE_MESSAGE_PATTERN.search(str(error)))


def compute_backoff(attempt: int, error: BaseException) -> int:
    """
    Seconds to wait before retry number ``attempt`` (starting at 1).

    Exponential base of 2^attempt, replaced by an explicit Retry-After on a
    429, plus a random jitter in [0, max(1, floor(base / 4))).
    """
    base = 2 ** attempt
    retry_after = getattr(error, "retry_after", None)
    if getattr(error, "status_code", None) == 429 and retry_after is not None and retry_after >= 0:
        base = retry_after
    jitter = random.randrange(max(1, math.floor(0.25 * base)))
    return base + jitter


def execute_with_retry(operation: Callable[[], T], max_retries: int, label: str) -> T:
    """
    Run ``operation`` and retry transient failures with exponential backoff.

    At most ``max_retries`` additional attempts follow the first one. A
    permanent failure, or the last transient one, is re-raised unchanged.
    """
    attempt = 0
    while True:
        try:
            return operation()
        except Exception as e:
            if attempt >= max_retries or not is_retryable(e):
                raise
            attempt += 1
            wait = compute_backoff(attempt, e)
            log.warn(f"{label} failed: {e}. Retrying in {wait}s (attempt {attempt}/{max_retries})")
            time.sleep(wait)


# ---------------------------------------------------------------------------
# Catalog API
# ---------------------------------------------------------------------------

def validate_region_name(region: str) -> str:
    """
    Validate a region code before it is placed in a request URL.

    Raises ValueError for anything but a plain alphanumeric/hyphen token.
    """
    if not re.fullmatch(r"[A-Za-z0-9][A-Za-z0-9-]*", region or ""):
        raise ValueError(f"Invalid region name: {region!r}")
    return region


def build_catalog_url(environment: CloudEnvironment, subscription_id: str, region: str) -> str:
    """Build the first-page URL (without query string) of a region's model catalog."""
    safe_region = validate_region_name(region)
    return (
        f"{environment.resource_manager}/subscriptions/{subscription_id}"
        f"/providers/{PROVIDER_NAMESPACE}/locations/{safe_region}/models"
    )


def parse_retry_after(header_value: str | None) -> int | None:
    """Parse a Retry-After header given in whole seconds."""
    if header_value is None:
        return None
    try:
        seconds = int(header_value)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def _error_detail(response: httpx.Response) -> str:
    """Extract the Azure error code/message from a failed response, if any."""
    try:
        body = response.json()
    except ValueError:
        return ""
    error = body.get("error") if isinstance(body, dict) else None
    if not isinstance(error, dict):
        return ""
    code = error.get("code", "")
    message = error.get("message", "")
    return f" - {code}: {message}" if code else f" - {message}" if message else ""


def request_catalog_page(url: str, token: str, params: dict | None = None) -> dict:
    """
    Perform a single catalog page request (no retry).

    Raises APIError for non-2xx responses and malformed bodies; transport
    failures propagate as httpx exceptions.
    """
    # Use module-level client if available (connection reuse), else the httpx module
    client = _http_client or httpx

    log.detail(f"GET {url}")
    response = client.get(
        url,
        params=params,
        headers={"Authorization": f"Bearer {token}"},
        timeout=REQUEST_TIMEOUT_SECONDS,
    )

    if response.status_code >= 400:
        raise APIError(
            f"API request failed: {response.status_code} {response.reason_phrase}{_error_detail(response)}",
            status_code=response.status_code,
            retry_after=parse_retry_after(response.headers.get("Retry-After")),
        )

    try:
        data = response.json()
    except ValueError as e:
        raise APIError(f"Invalid JSON response from API: {e}")

    if not isinstance(data, dict):
        raise APIError(f"Unexpected API response structure: expected object, got {type(data).__name__}")
    if "value" not in data:
        raise APIError("Unexpected API response structure: missing 'value' key")
    if not isinstance(data["value"], list):
        raise APIError(f"Unexpected API response structure: 'value' is not a list (got {type(data['value']).__name__})")
    return data


def _parse_bool(value) -> bool:
    """Catalog capabilities arrive as "true"/"false" strings."""
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def parse_model_entry(entry: dict) -> ModelRecord | None:
    """
    Convert one raw catalog entry into a ModelRecord.

    Returns None for entries without a provider format or model name.
    """
    model = entry.get("model") if isinstance(entry, dict) else None
    if not isinstance(model, dict):
        return None
    provider = model.get("format")
    name = model.get("name")
    if not provider or not name:
        return None

    skus = frozenset(
        sku["name"] for sku in model.get("skus") or []
        if isinstance(sku, dict) and sku.get("name")
    )
    raw_capabilities = model.get("capabilities")
    capabilities = (
        {str(k): _parse_bool(v) for k, v in raw_capabilities.items()}
        if isinstance(raw_capabilities, dict) else {}
    )

    max_capacity = model.get("maxCapacity")
    try:
        max_capacity = int(max_capacity) if max_capacity is not None else None
    except (TypeError, ValueError):
        max_capacity = None

    deprecation = model.get("deprecation") or {}

    return ModelRecord(
        provider_format=provider,
        model_name=name,
        model_version=str(model.get("version") or ""),
        lifecycle_status=model.get("lifecycleStatus") or "",
        max_capacity=max_capacity,
        deployment_skus=skus,
        capabilities=capabilities,
        deprecation_date=deprecation.get("inference") if isinstance(deprecation, dict) else None,
    )


def fetch_raw_entries(
    region: str,
    subscription_id: str,
    token: str,
    environment: CloudEnvironment,
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> list[dict]:
    """
    Fetch every raw catalog entry for a region, following nextLink.

    Each page is retried independently; a page that still fails aborts the
    whole fetch and nothing collected so far is returned.
    """
    entries = []
    url = build_catalog_url(environment, subscription_id, region)
    params = {"api-version": API_VERSION}

    for page in range(1, MAX_PAGES + 1):
        data = execute_with_retry(
            lambda: request_catalog_page(url, token, params),
            max_retries,
            f"Catalog page {page} for {region}",
        )
        page_entries = data["value"]
        entries.extend(page_entries)

        log.detail(f"Page {page}: fetched {len(page_entries)} entries")

        # nextLink already carries api-version and the continuation token
        next_link = data.get("nextLink")
        if not next_link:
            break
        url, params = next_link, None
    else:
        raise APIError(f"Exceeded maximum pages ({MAX_PAGES}) fetching models for {region}")

    return entries


def deduplicate_records(records: Iterable[ModelRecord]) -> list[ModelRecord]:
    """
    Collapse records sharing (provider, name, version) into one.

    The record with the most deployment SKUs wins; on equal counts the
    first one seen is kept. Output follows first-seen order of each key.
    """
    best: dict[tuple[str, str, str], ModelRecord] = {}
    for record in records:
        current = best.get(record.key)
        if current is None or len(record.deployment_skus) > len(current.deployment_skus):
            best[record.key] = record
    return list(best.values())


def compile_name_pattern(pattern: str) -> re.Pattern:
    """Translate a '*'/'?' wildcard pattern into an anchored, case-insensitive regex."""
    parts = []
    for char in pattern:
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.IGNORECASE | re.DOTALL)


def matches_name_patterns(name: str, patterns: Sequence[str]) -> bool:
    """True if ``name`` fully matches any of the wildcard patterns."""
    return any(compile_name_pattern(p).fullmatch(name) for p in patterns)


def apply_filters(records: Iterable[ModelRecord], filters: ModelFilters | None) -> list[ModelRecord]:
    """Keep records passing every supplied filter dimension."""
    if filters is None:
        return list(records)

    def passes(record: ModelRecord) -> bool:
        if filters.providers and record.provider_format not in filters.providers:
            return False
        if filters.model_patterns and not matches_name_patterns(record.model_name, filters.model_patterns):
            return False
        if filters.lifecycles and record.lifecycle_status not in filters.lifecycles:
            return False
        if filters.deployment_types and not (record.deployment_skus & filters.deployment_types):
            return False
        return True

    return [r for r in records if passes(r)]


def fetch_region_models(
    region: str,
    filters: ModelFilters | None,
    subscription_id: str,
    token: str,
    environment: CloudEnvironment,
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> list[ModelRecord]:
    """
    Fetch, deduplicate and filter the model catalog of one region.

    Raises APIError (or the underlying transport error) when any page fails
    after retries.
    """
    entries = fetch_raw_entries(region, subscription_id, token, environment, max_retries)

    records = []
    for entry in entries:
        record = parse_model_entry(entry)
        if record is None:
            log.detail(f"Skipping malformed catalog entry in {region}: {entry!r:.120}")
            continue
        records.append(record)

    unique = deduplicate_records(records)
    log.detail(f"{region}: {len(entries)} raw entries, {len(unique)} after deduplication")
    return apply_filters(unique, filters)


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

def aggregate_by_provider(records: Sequence[ModelRecord], region: str) -> list[ProviderSummary]:
    """
    Group records by provider and compute per-provider statistics.

    Pure function: summaries are sorted by provider name and the top model
    is the first record with the largest deployment SKU set.
    """
    groups: dict[str, list[ModelRecord]] = {}
    for record in records:
        groups.setdefault(record.provider_format, []).append(record)

    summaries = []
    for provider in sorted(groups):
        group = groups[provider]
        top = max(group, key=lambda r: len(r.deployment_skus))  # first max wins
        summaries.append(ProviderSummary(
            provider=provider,
            region=region,
            total_models=len(group),
            unique_model_names=len({r.model_name for r in group}),
            ga_count=sum(1 for r in group if r.lifecycle_status == LIFECYCLE_GA),
            stable_count=sum(1 for r in group if r.lifecycle_status == LIFECYCLE_STABLE),
            preview_count=sum(1 for r in group if r.lifecycle_status == LIFECYCLE_PREVIEW),
            deployment_types=tuple(sorted(set().union(*(r.deployment_skus for r in group)))),
            top_model=top.model_name,
            models=tuple(group),
        ))
    return summaries


# ---------------------------------------------------------------------------
# Cross-region comparison
# ---------------------------------------------------------------------------

def build_region_matrix(results: Sequence[RegionResult]) -> dict[str, dict[str, int]]:
    """
    Build {provider: {region: total_models}} across all regions.

    Every provider row has an entry for every region (0 where absent).
    """
    regions = [r.region for r in results]
    providers = sorted({s.provider for r in results for s in r.summaries})
    matrix = {p: {region: 0 for region in regions} for p in providers}
    for result in results:
        for summary in result.summaries:
            matrix[summary.provider][result.region] = summary.total_models
    return matrix


def build_model_matrix(results: Sequence[RegionResult]) -> dict[str, list[str]]:
    """Map each model name to the regions (in request order) that offer it."""
    matrix: dict[str, list[str]] = {}
    for result in results:
        for name in sorted({r.model_name for r in result.records}):
            regions = matrix.setdefault(name, [])
            if result.region not in regions:
                regions.append(result.region)
    return dict(sorted(matrix.items()))


# ---------------------------------------------------------------------------
# Output formatting
# ---------------------------------------------------------------------------

def _md_table(headers: list[str], rows: list[list]) -> list[str]:
    """Render a markdown table as a list of lines."""
    lines = [
        "| " + " | ".join(headers) + " |",
        "|" + "|".join("---" for _ in headers) + "|",
    ]
    for row in rows:
        lines.append("| " + " | ".join(str(cell) for cell in row) + " |")
    return lines


def format_markdown_report(
    results: Sequence[RegionResult],
    environment: CloudEnvironment,
    details: Sequence[str] = (),
) -> str:
    """
    Format results as markdown.

    Args:
        results: one RegionResult per requested region, in request order
        environment: cloud the data was fetched from
        details: providers whose individual models are listed per region
    """
    lines = []

    lines.append("# Azure Model Availability Report")
    lines.append("")
    lines.append(f"Cloud: {environment.name}")
    lines.append("")

    for result in results:
        lines.append(f"## {result.region}")
        lines.append("")

        if result.error is not None:
            lines.append(f"*Failed: {result.error}*")
            lines.append("")
            continue

        if not result.summaries:
            lines.append("No models matched.")
            lines.append("")
            continue

        rows = [
            [
                s.provider, s.total_models, s.unique_model_names, s.ga_count,
                s.stable_count, s.preview_count, ", ".join(s.deployment_types), s.top_model,
            ]
            for s in result.summaries
        ]
        lines.extend(_md_table(
            ["Provider", "Models", "Unique", "GA", "Stable", "Preview", "Deployment Types", "Top Model"],
            rows,
        ))
        lines.append("")

        for summary in result.summaries:
            if summary.provider not in details:
                continue
            lines.append(f"### {summary.provider} models")
            lines.append("")
            model_rows = [
                [
                    m.model_name, m.model_version, m.lifecycle_status,
                    ", ".join(sorted(m.deployment_skus)),
                    m.max_capacity if m.max_capacity is not None else "",
                    m.deprecation_date or "",
                ]
                for m in sorted(summary.models, key=lambda m: (m.model_name, m.model_version))
            ]
            lines.extend(_md_table(
                ["Model", "Version", "Lifecycle", "Deployment Types", "Max Capacity", "Deprecation"],
                model_rows,
            ))
            lines.append("")

    if len(results) > 1:
        matrix = build_region_matrix(results)
        if matrix:
            regions = [r.region for r in results]
            lines.append("## Cross-Region Comparison")
            lines.append("")
            rows = [[provider, *(counts[region] for region in regions)] for provider, counts in matrix.items()]
            lines.extend(_md_table(["Provider", *regions], rows))
            lines.append("")

        model_matrix = build_model_matrix(results)
        if model_matrix:
            lines.append("## Model Availability")
            lines.append("")
            rows = [[name, len(available), ", ".join(available)] for name, available in model_matrix.items()]
            lines.extend(_md_table(["Model", "Regions", "Available In"], rows))
            lines.append("")

    failed = [r for r in results if r.error is not None]
    if failed:
        lines.append(f"## Failed Regions ({len(failed)})")
        lines.append("")
        for result in failed:
            lines.append(f"- **{result.region}**: {result.error}")
        lines.append("")

    lines.append(f"*Generated {datetime.now().strftime('%Y-%m-%d %H:%M:%S')} by Azure Model Regions {__version__}*")

    return "\n".join(lines)


def summary_to_dict(summary: ProviderSummary) -> dict:
    """JSON-friendly view of a ProviderSummary (without its model records)."""
    return {
        "provider": summary.provider,
        "total_models": summary.total_models,
        "unique_model_names": summary.unique_model_names,
        "ga_count": summary.ga_count,
        "stable_count": summary.stable_count,
        "preview_count": summary.preview_count,
        "deployment_types": list(summary.deployment_types),
        "top_model": summary.top_model,
    }


def record_to_dict(record: ModelRecord) -> dict:
    """JSON-friendly view of a ModelRecord."""
    return {
        "provider": record.provider_format,
        "model": record.model_name,
        "version": record.model_version,
        "lifecycle": record.lifecycle_status,
        "deployment_types": sorted(record.deployment_skus),
        "max_capacity": record.max_capacity,
        "capabilities": record.capabilities,
        "deprecation_date": record.deprecation_date,
    }


def format_json_report(results: Sequence[RegionResult], environment: CloudEnvironment) -> str:
    """Format results as JSON, including per-region records and the comparison matrix."""
    output = {
        "timestamp": datetime.now().isoformat(),
        "cloud": environment.name,
        "regions": {},
        "matrix": build_region_matrix(results),
        "models_by_region": build_model_matrix(results),
        "failed_regions": {r.region: r.error for r in results if r.error is not None},
    }
    for result in results:
        if result.error is not None:
            continue
        output["regions"][result.region] = {
            "providers": [summary_to_dict(s) for s in result.summaries],
            "models": [record_to_dict(r) for r in result.records],
        }
    return json.dumps(output, indent=2)


CSV_COLUMNS = [
    "region", "provider", "model", "version", "lifecycle",
    "deployment_types", "max_capacity", "deprecation_date",
]


def format_csv_export(results: Sequence[RegionResult]) -> str:
    """One CSV row per filtered model record, prefixed with its region."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for result in results:
        for record in result.records:
            writer.writerow([
                result.region,
                record.provider_format,
                record.model_name,
                record.model_version,
                record.lifecycle_status,
                ";".join(sorted(record.deployment_skus)),
                "" if record.max_capacity is None else record.max_capacity,
                record.deprecation_date or "",
            ])
    return buffer.getvalue()


def export_results(results: Sequence[RegionResult], path: Path, environment: CloudEnvironment) -> None:
    """Write results to ``path`` as CSV or JSON depending on its suffix."""
    suffix = path.suffix.lower()
    if suffix == ".csv":
        content = format_csv_export(results)
    elif suffix == ".json":
        content = format_json_report(results, environment)
    else:
        raise ValueError(f"Unsupported export format: {path.suffix or path.name}")

    if path.parent and not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    log.detail(f"Exported results to {path}")


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def split_csv_values(values: list[str] | None) -> list[str]:
    """Flatten repeated and comma-separated option values, dropping blanks."""
    items = []
    for value in values or []:
        items.extend(v.strip() for v in value.split(",") if v.strip())
    return items


def parse_export_path(value: str) -> Path:
    """Validate the export file suffix."""
    path = Path(value)
    if path.suffix.lower() not in EXPORT_SUFFIXES:
        raise argparse.ArgumentTypeError(
            f"Unsupported export format: {value}. Use one of: {', '.join(sorted(EXPORT_SUFFIXES))}"
        )
    return path


def parse_max_retries(value: str) -> int:
    """Parse --max-retries as a non-negative integer."""
    try:
        retries = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid retry count: {value}")
    if retries < 0:
        raise argparse.ArgumentTypeError(f"Retry count must be non-negative: {value}")
    return retries


def resolve_regions(regions: list[str] | None, presets: list[str] | None) -> list[str]:
    """Combine explicit regions and presets, removing duplicates in order."""
    combined = []
    for preset in presets or []:
        combined.extend(REGION_PRESETS[preset])
    combined.extend(split_csv_values(regions))
    if not combined:
        combined = list(REGION_PRESETS[DEFAULT_PRESET])
    return list(dict.fromkeys(combined))


def build_filters(args: argparse.Namespace) -> ModelFilters:
    """Build ModelFilters from the parsed filter options."""
    return ModelFilters(
        providers=frozenset(split_csv_values(args.providers)),
        model_patterns=tuple(split_csv_values(args.models)),
        lifecycles=frozenset(split_csv_values(args.lifecycles)),
        deployment_types=frozenset(split_csv_values(args.deployment_types)),
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Report AI model availability across Azure regions.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s
  %(prog)s --region eastus --region swedencentral
  %(prog)s --preset europe --provider OpenAI --model 'gpt-4*'
  %(prog)s --lifecycle GenerallyAvailable --deployment-type GlobalStandard
  %(prog)s --preset us --details OpenAI --export models.csv
  %(prog)s --quiet --format json > models.json
        """,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "--region",
        action="append",
        dest="regions",
        metavar="REGION",
        help="Azure region to scan (repeatable, comma-separated accepted).",
    )

    parser.add_argument(
        "--preset",
        action="append",
        dest="presets",
        choices=sorted(REGION_PRESETS),
        help=f"Named region set to scan (repeatable). Default when no region given: {DEFAULT_PRESET}",
    )

    parser.add_argument(
        "--cloud",
        choices=sorted(CLOUD_ENVIRONMENTS),
        default=DEFAULT_CLOUD,
        help=f"Azure cloud environment. Default: {DEFAULT_CLOUD}",
    )

    parser.add_argument(
        "--subscription",
        metavar="ID",
        help="Subscription id. Default: AZURE_SUBSCRIPTION_ID or the Azure CLI's current account",
    )

    parser.add_argument(
        "--provider",
        action="append",
        dest="providers",
        metavar="NAME",
        help="Only include models from this provider, e.g. OpenAI (repeatable)",
    )

    parser.add_argument(
        "--model",
        action="append",
        dest="models",
        metavar="PATTERN",
        help="Only include model names matching this pattern; '*' and '?' are wildcards (repeatable)",
    )

    parser.add_argument(
        "--lifecycle",
        action="append",
        dest="lifecycles",
        metavar="STATUS",
        help=f"Only include these lifecycle statuses ({', '.join(LIFECYCLE_STATUSES)}) (repeatable)",
    )

    parser.add_argument(
        "--deployment-type",
        action="append",
        dest="deployment_types",
        metavar="SKU",
        help="Only include models offering this deployment type, e.g. GlobalStandard (repeatable)",
    )

    parser.add_argument(
        "--details",
        action="append",
        metavar="PROVIDER",
        default=[],
        help="List individual models for this provider in the report (repeatable)",
    )

    parser.add_argument(
        "--format",
        choices=["markdown", "json"],
        default="markdown",
        help="Output format. Default: markdown",
    )

    parser.add_argument(
        "--export",
        type=parse_export_path,
        metavar="FILE",
        help="Also write results to FILE (.csv or .json)",
    )

    parser.add_argument(
        "--max-retries",
        type=parse_max_retries,
        default=DEFAULT_MAX_RETRIES,
        metavar="N",
        help=f"Retries per request for throttling and transient errors. Default: {DEFAULT_MAX_RETRIES}",
    )

    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress progress messages (only output report)",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show detailed progress information",
    )

    args = parser.parse_args(argv)

    args.regions = resolve_regions(args.regions, args.presets)
    for region in args.regions:
        try:
            validate_region_name(region)
        except ValueError as e:
            parser.error(str(e))
    args.details = split_csv_values(args.details)

    return args


def scan_regions(
    regions: Sequence[str],
    filters: ModelFilters,
    subscription_id: str,
    token: str,
    environment: CloudEnvironment,
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> list[RegionResult]:
    """
    Fetch and aggregate each region in turn.

    A failing region is recorded with its error and an empty result; the
    remaining regions are still processed.
    """
    results = []
    for region in regions:
        log.progress(f"\nFetching models for {region}...")
        try:
            records = fetch_region_models(region, filters, subscription_id, token, environment, max_retries)
        except (APIError, httpx.HTTPError, httpx.InvalidURL, OSError) as e:
            log.error(f"{region}: {e}")
            results.append(RegionResult(region=region, error=str(e)))
            continue
        except Exception as e:
            log.error(f"{region}: Unexpected error: {e}")
            results.append(RegionResult(region=region, error=str(e)))
            continue

        summaries = aggregate_by_provider(records, region)
        log.progress(f"  Found {len(records)} models from {len(summaries)} providers")
        results.append(RegionResult(region=region, records=records, summaries=summaries))
    return results


def main(argv: list[str] | None = None):
    """Main entry point."""
    global log

    args = parse_args(argv)
    log = Logger(quiet=args.quiet, verbose=args.verbose)

    environment = CLOUD_ENVIRONMENTS[args.cloud]
    filters = build_filters(args)

    log.progress("Azure Model Regions")
    log.progress("=" * 40)
    log.detail(f"Cloud: {environment.name} ({environment.resource_manager})")
    log.detail(f"Regions: {', '.join(args.regions)}")

    global _http_client
    with httpx.Client() as client:
        _http_client = client
        try:
            subscription_id = get_subscription_id(args.subscription)
            token = get_access_token(environment)

            results = scan_regions(
                args.regions, filters, subscription_id, token, environment, args.max_retries,
            )

            if args.format == "json":
                report = format_json_report(results, environment)
            else:
                report = format_markdown_report(results, environment, args.details)
            print(report)

            if args.export:
                export_results(results, args.export, environment)
                log.progress(f"\nExported to {args.export}")

            failed = [r for r in results if r.error is not None]
            if len(failed) == len(results):
                sys.exit(EXIT_ERROR)
            sys.exit(EXIT_PARTIAL if failed else EXIT_SUCCESS)

        except CredentialError as e:
            log.error(str(e))
            sys.exit(EXIT_ERROR)

        except KeyboardInterrupt:
            log.error("Interrupted by user")
            sys.exit(EXIT_ERROR)

        except OSError as e:
            log.error(f"Export failed: {e}")
            sys.exit(EXIT_ERROR)

        except Exception as e:
            log.error(f"Unexpected error: {e}")
            sys.exit(EXIT_ERROR)

        finally:
            _http_client = None


if __name__ == "__main__":
    main()
