from __future__ import annotations

import re
from typing import Any, Literal, Mapping

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

AuthMode = Literal["simple", "anonymous", "ntlm"]
ReferralPolicy = Literal["ignore", "follow"]

ATTRIBUTE_MAP_SUFFIX = ".attribute.map"

# Flat property name -> settings field.
PROPERTY_FIELDS: dict[str, str] = {
    "provider.key": "provider_key",
    "url": "url",
    "public.bind.dn": "bind_dn",
    "public.bind.password": "bind_password",
    "authentification.mode": "authentication",
    "refferal": "referral",
    "ldap.connect.pool": "use_connection_pool",
    "ldap.connect.timeout": "connect_timeout_ms",
    "ldap.starttls": "start_tls",
    "ldap.tls.validate": "tls_validate",
    "ldap.tls.ca_file": "ca_certs_file",
    "search.name": "base_dn",
    "search.attribute": "identity_attribute",
    "search.objectclass": "static_object_class",
    "dynamic.search.objectclass": "dynamic_object_class",
    "members.attribute": "members_attribute",
    "dynamic.members.attribute": "dynamic_members_attribute",
    "search.countlimit": "search_count_limit",
    "search.wildcards.attributes": "wildcard_attributes",
    "members.user.attibute.map": "member_user_attribute",
    "ad.range.step": "ad_range_step",
    "preload": "preload",
    "cache.max_entries": "cache_max_entries",
    "reserved.groups": "reserved_group_names",
}

# Keys that end with ".attribute.map" but are not property mappings.
_NOT_A_MAPPING = {"members.user.attibute.map"}


class ConfigurationError(ValueError):
    """Raised at startup when the provider configuration cannot be used."""


class GroupProviderSettings(BaseModel):
    """Typed configuration of one LDAP group provider."""

    provider_key: str = Field(default="ldap", min_length=1, max_length=64)

    # Connection
    url: str = Field(..., min_length=1)
    bind_dn: str = Field(default="")
    bind_password: str = Field(default="")
    authentication: AuthMode = Field(default="simple")
    referral: ReferralPolicy = Field(default="ignore")
    use_connection_pool: bool = Field(default=True)
    connect_timeout_ms: int = Field(default=5000, ge=-1)
    start_tls: bool = Field(default=False)
    tls_validate: bool = Field(default=False)
    ca_certs_file: str = Field(default="")

    # Search
    base_dn: str = Field(default="")
    identity_attribute: str = Field(default="cn", min_length=1)
    static_object_class: str = Field(default="groupOfUniqueNames", min_length=1)
    dynamic_object_class: str = Field(default="groupOfURLs", min_length=1)
    members_attribute: str = Field(default="uniqueMember", min_length=1)
    dynamic_members_attribute: str = Field(default="memberurl", min_length=1)
    search_count_limit: int = Field(default=100, ge=0)
    wildcard_attributes: list[str] = Field(default_factory=lambda: ["cn", "description", "uniqueMember"])

    # Mapping and membership
    attribute_map: dict[str, str] = Field(
        default_factory=lambda: {"groupname": "cn", "description": "description"}
    )
    member_user_attribute: str = Field(default="")
    ad_range_step: int = Field(default=0, ge=0)
    preload: bool = Field(default=False)

    # Cache
    cache_max_entries: int = Field(default=5000, ge=1)
    reserved_group_names: list[str] = Field(default_factory=lambda: ["administrators", "guest", "users"])

    @field_validator("url", "bind_dn", "base_dn", "identity_attribute", "member_user_attribute", "ca_certs_file")
    @classmethod
    def _strip(cls, v: str) -> str:
        return (v or "").strip()

    @field_validator("url")
    @classmethod
    def _validate_url(cls, v: str) -> str:
        if not v:
            raise ValueError("LDAP URL is required.")
        for u in v.split():
            if not re.match(r"^ldaps?://[^/\s]+", u, re.IGNORECASE):
                raise ValueError(f"Unsupported LDAP URL '{u}' (expected ldap:// or ldaps://).")
        return v

    @field_validator("authentication", mode="before")
    @classmethod
    def _auth_alias(cls, v: Any) -> Any:
        s = str(v or "simple").strip().lower()
        return "anonymous" if s == "none" else s

    @field_validator("referral", mode="before")
    @classmethod
    def _referral_alias(cls, v: Any) -> Any:
        s = str(v or "ignore").strip().lower()
        # "throw" has no ldap3 counterpart; referrals are then reported, not chased.
        return "ignore" if s == "throw" else s

    @field_validator("wildcard_attributes", "reserved_group_names", mode="before")
    @classmethod
    def _split_list(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [x for x in re.split(r"[,\s]+", v) if x]
        return [(x or "").strip() for x in (v or []) if (x or "").strip()]

    @field_validator("attribute_map")
    @classmethod
    def _strip_map(cls, v: dict[str, str]) -> dict[str, str]:
        return {k.strip(): (val or "").strip() for k, val in (v or {}).items() if k.strip() and (val or "").strip()}

    @model_validator(mode="after")
    def _check_credentials(self):
        if self.authentication == "simple" and self.bind_password and not self.bind_dn:
            raise ValueError("A bind password is set without a bind DN.")
        return self

    @property
    def key_prefix(self) -> str:
        return "{" + self.provider_key + "}"

    @property
    def connect_timeout_s(self) -> float | None:
        if self.connect_timeout_ms <= 0:
            return None
        return self.connect_timeout_ms / 1000.0

    @property
    def urls(self) -> list[str]:
        return self.url.split()

    @classmethod
    def from_properties(cls, props: Mapping[str, Any], **overrides: Any) -> "GroupProviderSettings":
        try:
            return cls(**properties_to_payload(props, overrides))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid LDAP group provider configuration: {e}") from e


def properties_to_payload(props: Mapping[str, Any], overrides: Mapping[str, Any] | None = None) -> dict:
    """Translate a flat provider property mapping into a settings payload.

    'user.'-prefixed keys belong to the user provider and are skipped,
    'group.' prefixes are dropped. Every '<property>.attribute.map' entry
    lands in the attribute map; when at least one is present it replaces the
    default map.
    """
    payload: dict[str, Any] = {}
    mapping: dict[str, str] = {}

    for raw_key, value in (props or {}).items():
        key = str(raw_key).strip()
        if key.startswith("user."):
            continue
        if key.startswith("group."):
            key = key[len("group."):]
        if value is None:
            continue

        if key.endswith(ATTRIBUTE_MAP_SUFFIX) and key not in _NOT_A_MAPPING:
            mapping[key[: -len(ATTRIBUTE_MAP_SUFFIX)]] = str(value)
            continue

        field_name = PROPERTY_FIELDS.get(key)
        if field_name:
            payload[field_name] = value

    if mapping:
        payload["attribute_map"] = mapping
    if overrides:
        payload.update({k: v for k, v in overrides.items() if v is not None})
    return payload
