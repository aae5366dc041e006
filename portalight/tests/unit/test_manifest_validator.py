from __future__ import annotations

from portalight.domain.catalog import CatalogDocument
from portalight.services.catalog.validator import validate_document
from portalight.tests.utils.manifests import manifest, service


def _document(**kwargs) -> CatalogDocument:
    return CatalogDocument.model_validate(manifest(**kwargs))


def test_valid_document_has_no_errors() -> None:
    assert validate_document(_document()) == []


def test_validation_collects_every_error() -> None:
    document = _document(
        owner=None,
        services=[service("payments-api"), service("payments-api", title="Second")],
    )

    errors = validate_document(document)

    assert [error.as_dict() for error in errors] == [
        {"field": "metadata.owner", "message": "is required"},
        {
            "field": "spec.services[1].name",
            "message": "duplicate service name 'payments-api' in this file",
        },
    ]


def test_validation_checks_document_markers() -> None:
    document = CatalogDocument.model_validate(
        {
            "apiVersion": "v0",
            "kind": "Catalog",
            "metadata": {"name": "x", "title": "X", "owner": "payments-team"},
            "spec": {"services": [{"name": "a", "title": "A"}]},
        }
    )

    fields = [error.field for error in validate_document(document)]

    assert fields == ["apiVersion", "kind"]


def test_validation_requires_services_and_titles() -> None:
    document = _document(name=" ", title="", services=[])

    errors = {error.field: error.message for error in validate_document(document)}

    assert errors == {
        "metadata.name": "is required",
        "metadata.title": "is required",
        "spec.services": "at least one service is required",
    }


def test_validation_reports_blank_service_fields_by_index() -> None:
    document = _document(services=[service("api"), {"name": "", "title": ""}, {"name": "worker"}])

    fields = [error.field for error in validate_document(document)]

    assert fields == [
        "spec.services[1].name",
        "spec.services[1].title",
        "spec.services[2].title",
    ]
