"""
Submission form configuration.

Each event may store a `submission_form_config` JSON document describing the
custom fields of its submission form, overrides for the built-in fields
(tagline, demo URL, attachments) and a few settings. Stored documents are
edited by organizers through the UI and are read leniently: malformed entries
are skipped and missing flags take their defaults.

Example::

    {
        "fields": [
            {"key": "github", "label": "GitHub repo", "type": "url"},
            {"key": "phone", "label": "Contact phone", "type": "phone",
             "publicVisible": false}
        ],
        "baseFields": {"demoUrl": {"required": true, "label": "Live demo"}},
        "settings": {"attachmentsEnabled": true}
    }
"""
from dataclasses import dataclass, field
from typing import Any, Optional

FIELD_TYPES = frozenset({
    "text",
    "textarea",
    "url",
    "phone",
    "email",
    "image",
    "file",
    "select",
    "radio",
    "checkbox",
})

DEFAULT_TAGLINE_LABEL = "Tagline"
DEFAULT_DEMO_URL_LABEL = "Project link"
DEFAULT_ATTACHMENTS_LABEL = "Attachments"


@dataclass
class SubmissionField:
    """Descriptor of one custom field on the submission form."""
    key: str
    label: str
    type: str = "text"
    required: bool = False
    enabled: bool = True
    public_visible: bool = True
    order: float = 0
    description: Optional[str] = None
    placeholder: Optional[str] = None
    options: Optional[list[str]] = None


@dataclass
class BaseFieldConfig:
    """Organizer overrides for a built-in field."""
    label: Optional[str] = None
    description: Optional[str] = None
    placeholder: Optional[str] = None
    required: Optional[bool] = None
    enabled: Optional[bool] = None


@dataclass
class SubmissionFormSettings:
    attachments_enabled: Optional[bool] = None
    community_use_authorization_enabled: Optional[bool] = None
    work_authorization_agreement_markdown: Optional[str] = None


@dataclass
class SubmissionFormConfig:
    fields: list[SubmissionField] = field(default_factory=list)
    base_fields: dict[str, BaseFieldConfig] = field(default_factory=dict)
    settings: Optional[SubmissionFormSettings] = None

    def enabled_fields(self) -> list[SubmissionField]:
        return [f for f in self.fields if f.enabled]

    def visible_fields(self, include_private: bool) -> list[SubmissionField]:
        """Enabled fields a caller may see; private callers also see non-public ones."""
        return [f for f in self.enabled_fields() if include_private or f.public_visible]

    def disabled_keys(self) -> set[str]:
        return {f.key for f in self.fields if not f.enabled}


@dataclass
class BaseFieldRules:
    """Effective enabled/required/label for one built-in field."""
    enabled: bool
    required: bool
    label: str


def _optional_string(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


def _optional_bool(value: Any) -> Optional[bool]:
    return value if isinstance(value, bool) else None


def _normalize_options(value: Any) -> Optional[list[str]]:
    if not isinstance(value, list):
        return None
    options = [str(option) for option in value if str(option).strip() != ""]
    return options or None


def _normalize_field(raw: Any, index: int) -> Optional[SubmissionField]:
    if not isinstance(raw, dict):
        return None
    key = raw.get("key") if isinstance(raw.get("key"), str) else ""
    label = raw.get("label") if isinstance(raw.get("label"), str) else ""
    if not key or not label:
        return None

    field_type = raw.get("type")
    order = raw.get("order")
    return SubmissionField(
        key=key,
        label=label,
        type=field_type if field_type in FIELD_TYPES else "text",
        required=bool(raw.get("required", False)),
        enabled=bool(raw.get("enabled", True)),
        public_visible=bool(raw.get("publicVisible", True)),
        order=order if isinstance(order, (int, float)) and not isinstance(order, bool) else index,
        description=raw.get("description") if isinstance(raw.get("description"), str) else None,
        placeholder=raw.get("placeholder") if isinstance(raw.get("placeholder"), str) else None,
        options=_normalize_options(raw.get("options")),
    )


def _normalize_base_field(raw: Any) -> Optional[BaseFieldConfig]:
    if not isinstance(raw, dict):
        return None
    config = BaseFieldConfig(
        label=_optional_string(raw.get("label")),
        description=_optional_string(raw.get("description")),
        placeholder=_optional_string(raw.get("placeholder")),
        required=_optional_bool(raw.get("required")),
        enabled=_optional_bool(raw.get("enabled")),
    )
    if all(value is None for value in vars(config).values()):
        return None
    return config


def _normalize_settings(raw: Any) -> Optional[SubmissionFormSettings]:
    if not isinstance(raw, dict):
        return None
    settings = SubmissionFormSettings(
        attachments_enabled=_optional_bool(raw.get("attachmentsEnabled")),
        community_use_authorization_enabled=_optional_bool(raw.get("communityUseAuthorizationEnabled")),
        work_authorization_agreement_markdown=_optional_string(raw.get("workAuthorizationAgreementMarkdown")),
    )
    if all(value is None for value in vars(settings).values()):
        return None
    return settings


def normalize_submission_form_config(raw: Any) -> Optional[SubmissionFormConfig]:
    """
    Parse a stored form configuration.

    Returns None when the document carries nothing usable. Fields are returned
    sorted by their `order` (falling back to their position).
    """
    if not isinstance(raw, dict):
        return None

    raw_fields = raw.get("fields") if isinstance(raw.get("fields"), list) else []
    fields = [
        parsed for parsed in (_normalize_field(item, index) for index, item in enumerate(raw_fields))
        if parsed is not None
    ]
    fields.sort(key=lambda f: f.order)

    base_fields: dict[str, BaseFieldConfig] = {}
    raw_base = raw.get("baseFields")
    if isinstance(raw_base, dict):
        for name in ("tagline", "demoUrl", "attachments"):
            parsed = _normalize_base_field(raw_base.get(name))
            if parsed is not None:
                base_fields[name] = parsed

    settings = _normalize_settings(raw.get("settings"))

    if not fields and not base_fields and settings is None:
        return None
    return SubmissionFormConfig(fields=fields, base_fields=base_fields, settings=settings)


def resolve_base_field_rules(config: Optional[SubmissionFormConfig]) -> dict[str, BaseFieldRules]:
    """Effective rules for tagline, demoUrl and attachments."""
    base = config.base_fields if config else {}
    settings = config.settings if config else None
    defaults = {
        "tagline": DEFAULT_TAGLINE_LABEL,
        "demoUrl": DEFAULT_DEMO_URL_LABEL,
        "attachments": DEFAULT_ATTACHMENTS_LABEL,
    }

    rules = {}
    for name, default_label in defaults.items():
        override = base.get(name) or BaseFieldConfig()
        enabled = override.enabled
        if enabled is None and name == "attachments" and settings is not None:
            enabled = settings.attachments_enabled
        enabled = True if enabled is None else enabled
        rules[name] = BaseFieldRules(
            enabled=enabled,
            required=bool(override.required) and enabled,
            label=override.label or default_label,
        )
    return rules
