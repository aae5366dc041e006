from __future__ import annotations

from datetime import date, datetime
from typing import Any

import yaml
from pydantic import ValidationError

from portalight.core.errors import ManifestParseError
from portalight.domain.catalog import CatalogDocument
from portalight.services.catalog.results import (
    ERROR_KIND_PARSE,
    FieldError,
    StageFailed,
    StageOk,
    StageResult,
    format_field_path,
)


def _normalize_scalars(value: Any) -> Any:
    # YAML turns bare dates into date objects; manifests only carry strings there.
    if isinstance(value, dict):
        return {key: _normalize_scalars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_normalize_scalars(item) for item in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def parse_manifest(content: bytes) -> StageResult[CatalogDocument]:
    """Turn raw manifest bytes into a CatalogDocument.

    Only structure is checked here: YAML syntax, a mapping at the root and
    field types. Missing fields and semantic rules are left to the validator,
    and unknown keys are kept for the audit snapshot.
    """
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        return StageFailed(ERROR_KIND_PARSE, f"manifest is not valid UTF-8: {exc}")
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        return StageFailed(ERROR_KIND_PARSE, f"failed to parse YAML: {exc}")
    if data is None:
        return StageFailed(ERROR_KIND_PARSE, "manifest is empty")
    if not isinstance(data, dict):
        return StageFailed(ERROR_KIND_PARSE, "manifest root must be a mapping")
    try:
        document = CatalogDocument.model_validate(_normalize_scalars(data))
    except ValidationError as exc:
        errors = tuple(
            FieldError(field=format_field_path(tuple(item["loc"])), message=item["msg"])
            for item in exc.errors()
        )
        return StageFailed(ERROR_KIND_PARSE, "manifest has malformed fields", errors)
    return StageOk(document)


def load_manifest(content: bytes) -> CatalogDocument:
    # Raising variant for scripts that lint manifests outside the sync pipeline.
    result = parse_manifest(content)
    if isinstance(result, StageFailed):
        details = "; ".join(f"{error.field}: {error.message}" for error in result.errors)
        raise ManifestParseError(f"{result.message}: {details}" if details else result.message)
    return result.value
