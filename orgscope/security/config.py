from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from orgscope.directory.records import RoleLevel

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class AuthConfig(BaseModel):
    authorization_header: str = "Authorization"
    bearer_prefix: str = "Bearer"


class RegionDef(BaseModel):
    code: str
    name: str | None = None


class TitleRule(BaseModel):
    match: str
    level: RoleLevel


class ColumnMap(BaseModel):
    """Physical column names for the three scope dimensions."""

    employee_id: str = "employee_id"
    region: str = "region"
    status: str = "status"

    @field_validator("employee_id", "region", "status")
    @classmethod
    def _identifier(cls, value: str) -> str:
        if not _IDENTIFIER_RE.match(value):
            raise ValueError(f"not a valid column identifier: {value!r}")
        return value


class PowerBIConfig(BaseModel):
    report_id: str | None = None
    embed_url: str = "https://app.powerbi.com/reportEmbed"
    table: str = "Employees"
    columns: ColumnMap = Field(
        default_factory=lambda: ColumnMap(employee_id="EmployeeID", region="Region", status="Status")
    )


class CatalogConfig(BaseModel):
    columns: ColumnMap = Field(default_factory=ColumnMap)


class DefaultRule(BaseModel):
    auth_required: bool = True
    min_level: RoleLevel | None = None


class RouteRule(BaseModel):
    path: str
    methods: list[str] = Field(default_factory=lambda: ["GET"])

    auth_required: bool | None = None
    min_level: RoleLevel | None = None

    def normalized_methods(self) -> set[str]:
        return {m.upper() for m in self.methods}


class ScopeConfigModel(BaseModel):
    auth: AuthConfig = Field(default_factory=AuthConfig)
    regions: list[RegionDef] = Field(default_factory=list)
    country_regions: dict[str, str] = Field(default_factory=dict)
    title_levels: list[TitleRule] = Field(default_factory=list)
    default_level: RoleLevel = RoleLevel.MANAGER
    power_bi: PowerBIConfig = Field(default_factory=PowerBIConfig)
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    default: DefaultRule = Field(default_factory=DefaultRule)
    routes: list[RouteRule] = Field(default_factory=list)

    @field_validator("country_regions")
    @classmethod
    def _normalize_countries(cls, value: dict[str, str]) -> dict[str, str]:
        return {k.strip().upper(): v for k, v in value.items()}

    @model_validator(mode="after")
    def _country_regions_known(self) -> ScopeConfigModel:
        codes = {r.code for r in self.regions}
        unknown = sorted(set(self.country_regions.values()) - codes)
        if unknown:
            raise ValueError(f"country_regions maps to unknown regions: {unknown}")
        return self


@dataclass(frozen=True)
class EffectiveRule:
    """Route rule with defaults applied."""

    auth_required: bool
    min_level: RoleLevel | None


def _path_template_to_regex(path_template: str) -> re.Pattern[str]:
    # "/assistant/conversations/{id}/query" -> r"^/assistant/conversations/[^/]+/query$"
    regex = re.sub(r"\{[^/]+\}", r"[^/]+", path_template)
    return re.compile(rf"^{regex}$")


class ScopeConfig:
    """
    Runtime helper around the validated scope configuration: region catalog,
    directory mappings, filter target names and route rules.
    """

    def __init__(self, model: ScopeConfigModel):
        self.model = model

        self._exact_rules: dict[str, list[RouteRule]] = {}
        for r in self.model.routes:
            self._exact_rules.setdefault(r.path, []).append(r)
        self._compiled_rules = [(_path_template_to_regex(r.path), r) for r in self.model.routes]

    @property
    def auth(self) -> AuthConfig:
        return self.model.auth

    @property
    def region_codes(self) -> frozenset[str]:
        return frozenset(r.code for r in self.model.regions)

    @property
    def power_bi(self) -> PowerBIConfig:
        return self.model.power_bi

    @property
    def catalog(self) -> CatalogConfig:
        return self.model.catalog

    def region_for_country(self, country: str | None) -> str | None:
        if not country:
            return None
        return self.model.country_regions.get(country.strip().upper())

    def level_for_title(self, title: str | None) -> RoleLevel:
        lowered = (title or "").lower()
        for rule in self.model.title_levels:
            if rule.match.lower() in lowered:
                return rule.level
        return self.model.default_level

    def match(self, path: str, method: str) -> EffectiveRule:
        """Best matching rule for (path, method): exact path, then template, then defaults."""

        method = method.upper()
        default = self.model.default

        for candidate in self._exact_rules.get(path, []):
            if method in candidate.normalized_methods():
                return _effective(candidate, default)

        for regex, candidate in self._compiled_rules:
            if method in candidate.normalized_methods() and regex.match(path):
                return _effective(candidate, default)

        return EffectiveRule(auth_required=default.auth_required, min_level=default.min_level)


def _effective(rule: RouteRule, default: DefaultRule) -> EffectiveRule:
    # A level requirement implies authentication even when the default is public.
    inferred_auth_required = default.auth_required or rule.min_level is not None
    return EffectiveRule(
        auth_required=inferred_auth_required if rule.auth_required is None else rule.auth_required,
        min_level=rule.min_level if rule.min_level is not None else default.min_level,
    )


def load_scope_config(path: Path) -> ScopeConfig:
    raw_text = path.read_text(encoding="utf-8")
    raw: dict[str, Any] = yaml.safe_load(raw_text) or {}

    if "scope" not in raw:
        raise ValueError(f"Missing top-level 'scope' key in config: {path}")

    model = ScopeConfigModel.model_validate(raw["scope"])
    return ScopeConfig(model)
