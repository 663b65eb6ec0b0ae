"""Conversion between gem metadata and its JSON-encoded database columns."""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from .models import DbGemMetadataRow
from .types import GemDependency, GemMetadata

_I64_MAX = 2**63 - 1


class MetadataDecodeError(ValueError):
    """A metadata column held JSON that could not be decoded into the expected shape."""


@dataclass(frozen=True)
class PreparedMetadataStrings:
    """The JSON text columns written alongside a gem metadata record."""

    licenses_json: str
    authors_json: str
    emails_json: str
    dependencies_json: str
    executables_json: str
    extensions_json: str
    native_languages_json: str
    metadata_json: str | None
    size_bytes: int
    sbom_json: str | None


def _dumps(value: Any, what: str) -> str:
    try:
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"serializing {what}") from exc


def _loads(raw: str, what: str) -> Any:
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError) as exc:
        raise MetadataDecodeError(f"parsing {what}") from exc


def _string_list(field: str, values: list[Any]) -> list[str]:
    if not all(isinstance(item, str) for item in values):
        raise MetadataDecodeError(f"parsing {field} json array: expected strings")
    return values


def prepare_metadata_strings(metadata: GemMetadata) -> PreparedMetadataStrings:
    """Encode the list and document fields of ``metadata`` as compact JSON text."""
    metadata_json = None if metadata.metadata is None else _dumps(metadata.metadata, "metadata json")
    sbom_json = None if metadata.sbom is None else _dumps(metadata.sbom, "sbom json")
    return PreparedMetadataStrings(
        licenses_json=_dumps(metadata.licenses, "licenses"),
        authors_json=_dumps(metadata.authors, "authors"),
        emails_json=_dumps(metadata.emails, "emails"),
        dependencies_json=_dumps(
            [dependency.to_dict() for dependency in metadata.dependencies], "dependencies"
        ),
        executables_json=_dumps(metadata.executables, "executables"),
        extensions_json=_dumps(metadata.extensions, "extensions"),
        native_languages_json=_dumps(metadata.native_languages, "native language list"),
        metadata_json=metadata_json,
        size_bytes=min(metadata.size_bytes, _I64_MAX),
        sbom_json=sbom_json,
    )


def parse_language_rows(rows: Iterable[str | None]) -> list[str]:
    """Merge JSON language lists into one sorted list without duplicates."""
    languages: set[str] = set()
    for row in rows:
        if row is None:
            continue
        items = _loads(row, "native language list from database")
        if not isinstance(items, list):
            raise MetadataDecodeError("parsing native language list from database: expected array")
        languages.update(_string_list("native_languages", items))
    return sorted(languages)


def parse_json_array(field: str, raw: str | None) -> list[Any]:
    """Decode a JSON array column; a missing value gives an empty list."""
    if raw is None:
        return []
    value = _loads(raw, f"{field} json array")
    if not isinstance(value, list):
        raise MetadataDecodeError(f"parsing {field} json array: expected array")
    return value


def parse_required_json_array(field: str, raw: str) -> list[Any]:
    """Decode a JSON array column that must be present."""
    if raw is None:
        raise MetadataDecodeError(f"{field} json array is missing")
    return parse_json_array(field, raw)


def parse_json_value(field: str, raw: str | None) -> Any:
    """Decode an arbitrary JSON column; a missing value gives None."""
    if raw is None:
        return None
    return _loads(raw, f"{field} json value")


def _dependencies(raw: str) -> list[GemDependency]:
    items = parse_required_json_array("dependencies", raw)
    try:
        return [GemDependency.from_dict(item) for item in items]
    except ValueError as exc:
        raise MetadataDecodeError(f"parsing dependencies json array: {exc}") from exc


def hydrate_metadata_row(row: DbGemMetadataRow) -> GemMetadata:
    """Build a GemMetadata from a stored row, decoding its JSON columns."""
    sbom = None if row.sbom_json is None else _loads(row.sbom_json, "sbom json value")
    return GemMetadata(
        name=row.name,
        version=row.version,
        platform=row.platform,
        summary=row.summary,
        description=row.description,
        licenses=_string_list("licenses", parse_required_json_array("licenses", row.licenses)),
        authors=_string_list("authors", parse_required_json_array("authors", row.authors)),
        emails=_string_list("emails", parse_required_json_array("emails", row.emails)),
        homepage=row.homepage,
        documentation_url=row.documentation_url,
        changelog_url=row.changelog_url,
        source_code_url=row.source_code_url,
        bug_tracker_url=row.bug_tracker_url,
        wiki_url=row.wiki_url,
        funding_url=row.funding_url,
        metadata=parse_json_value("metadata", row.metadata_json),
        dependencies=_dependencies(row.dependencies_json),
        executables=_string_list(
            "executables", parse_json_array("executables", row.executables_json)
        ),
        extensions=_string_list("extensions", parse_json_array("extensions", row.extensions_json)),
        native_languages=_string_list(
            "native_languages", parse_json_array("native_languages", row.native_languages_json)
        ),
        has_native_extensions=bool(row.has_native_extensions),
        has_embedded_binaries=bool(row.has_embedded_binaries),
        required_ruby_version=row.required_ruby_version,
        required_rubygems_version=row.required_rubygems_version,
        rubygems_version=row.rubygems_version,
        specification_version=row.specification_version,
        built_at=row.built_at,
        size_bytes=max(row.size_bytes, 0),
        sha256=row.sha256,
        sbom=sbom,
    )