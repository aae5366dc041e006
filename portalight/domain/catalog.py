from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


# Every section keeps unknown keys (extra="allow") so newer manifests still parse
# and the audit snapshot stays verbatim.
_DOCUMENT_CONFIG = ConfigDict(
    extra="allow",
    populate_by_name=True,
    coerce_numbers_to_str=True,
)


def _none_to_list(value: Any) -> Any:
    return [] if value is None else value


def _none_to_empty(value: Any) -> Any:
    # A key with no value (`owner:`) loads as None.
    return "" if value is None else value


def _clean_name(value: Any) -> Any:
    # Names are natural keys; compare and store them without surrounding whitespace.
    value = _none_to_empty(value)
    return value.strip() if isinstance(value, str) else value


class CatalogLink(BaseModel):
    model_config = _DOCUMENT_CONFIG

    url: str = ""
    title: str = ""
    type: str = ""

    @field_validator("url", "title", "type", mode="before")
    @classmethod
    def none_to_empty(cls, value: Any) -> Any:
        return _none_to_empty(value)


class CatalogDependencies(BaseModel):
    model_config = _DOCUMENT_CONFIG

    infrastructure: list[str] = Field(default_factory=list)
    services: list[str] = Field(default_factory=list)

    @field_validator("infrastructure", "services", mode="before")
    @classmethod
    def none_to_list(cls, value: Any) -> Any:
        return _none_to_list(value)


class CatalogService(BaseModel):
    model_config = _DOCUMENT_CONFIG

    name: str = ""
    title: str = ""
    description: str = ""
    language: str = ""
    environment: str = ""
    repository: str = ""
    owner: str = ""
    tags: list[str] = Field(default_factory=list)
    links: list[CatalogLink] = Field(default_factory=list)
    dependencies: CatalogDependencies = Field(default_factory=CatalogDependencies)

    @field_validator("name", mode="before")
    @classmethod
    def clean_name(cls, value: Any) -> Any:
        return _clean_name(value)

    @field_validator(
        "title", "description", "language", "environment", "repository", "owner", mode="before"
    )
    @classmethod
    def none_to_empty(cls, value: Any) -> Any:
        return _none_to_empty(value)

    @field_validator("tags", "links", mode="before")
    @classmethod
    def none_to_list(cls, value: Any) -> Any:
        return _none_to_list(value)

    @field_validator("dependencies", mode="before")
    @classmethod
    def none_to_dependencies(cls, value: Any) -> Any:
        return {} if value is None else value


class CatalogMetadata(BaseModel):
    model_config = _DOCUMENT_CONFIG

    name: str = ""
    title: str = ""
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    # Team name or team id depending on the deployment's owner reference profile.
    owner: str = ""
    links: list[CatalogLink] = Field(default_factory=list)

    @field_validator("name", mode="before")
    @classmethod
    def clean_name(cls, value: Any) -> Any:
        return _clean_name(value)

    @field_validator("title", "description", "owner", mode="before")
    @classmethod
    def none_to_empty(cls, value: Any) -> Any:
        return _none_to_empty(value)

    @field_validator("tags", "links", mode="before")
    @classmethod
    def none_to_list(cls, value: Any) -> Any:
        return _none_to_list(value)


class CatalogSpec(BaseModel):
    model_config = _DOCUMENT_CONFIG

    services: list[CatalogService] = Field(default_factory=list)

    @field_validator("services", mode="before")
    @classmethod
    def none_to_list(cls, value: Any) -> Any:
        return _none_to_list(value)


class CatalogDocument(BaseModel):
    """Parsed manifest: one project and its ordered services."""

    model_config = _DOCUMENT_CONFIG

    api_version: str = Field(default="", alias="apiVersion")
    kind: str = ""
    metadata: CatalogMetadata = Field(default_factory=CatalogMetadata)
    spec: CatalogSpec = Field(default_factory=CatalogSpec)

    @field_validator("api_version", "kind", mode="before")
    @classmethod
    def none_to_empty(cls, value: Any) -> Any:
        return _none_to_empty(value)

    @field_validator("metadata", "spec", mode="before")
    @classmethod
    def none_to_section(cls, value: Any) -> Any:
        return {} if value is None else value

    def snapshot(self) -> dict[str, Any]:
        # Keep wire names and unknown fields so the stored snapshot matches the manifest.
        return self.model_dump(mode="json", by_alias=True)


def service_snapshot(service: CatalogService) -> dict[str, Any]:
    return service.model_dump(mode="json", by_alias=True)


def link_url(links: list[CatalogLink], link_type: str) -> str | None:
    # First typed link wins; titles are matched as a fallback for hand-written manifests.
    for link in links:
        if link.type.lower() == link_type and link.url:
            return link.url
    for link in links:
        if link.title.lower() == link_type and link.url:
            return link.url
    return None
