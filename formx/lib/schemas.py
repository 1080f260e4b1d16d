"""
Pydantic records shared across the engine.

Wire-facing records use camelCase aliases (the persisted JSON format) and
accept either spelling on input.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


class FormxModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def dump(self) -> Dict[str, Any]:
        """JSON-ready dict using wire (camelCase) names, without unset optionals."""
        return self.model_dump(by_alias=True, exclude_none=True)


# ---------------- Component tree ----------------

class ComponentNode(FormxModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    type: str
    props: Dict[str, Any] = Field(default_factory=dict)
    children: List["ComponentNode"] = Field(default_factory=list)
    guid: Optional[str] = None
    name: Optional[str] = None

    def walk(self):
        """Depth-first, pre-order."""
        yield self
        for child in self.children:
            yield from child.walk()

    @property
    def data_key(self) -> Optional[str]:
        key = self.props.get("dataKey")
        if isinstance(key, dict):
            key = key.get("value")
        return key if isinstance(key, str) and key else None


ComponentNode.model_rebuild()


# ---------------- Dependencies ----------------

class DependencyCondition(FormxModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    type: str = "expression"
    expression: Optional[str] = Field(None, validation_alias=AliasChoices("expression", "expr"))
    field: Optional[str] = None
    operator: Optional[str] = None
    value: Any = None
    fn_source: Optional[str] = Field(None, alias="fnSource")
    default: Any = None

    @property
    def has_default(self) -> bool:
        return "default" in self.model_fields_set


class ComputedPropertySpec(FormxModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    type: str = "expression"
    expression: Optional[str] = Field(None, validation_alias=AliasChoices("expression", "expr"))
    fn_source: Optional[str] = Field(None, alias="fnSource")
    template: Optional[str] = None
    default: Any = None


class FilterDependency(FormxModel):
    source_field: str = Field(alias="sourceField")
    target_param: str = Field(alias="targetParam")
    transform: Optional[str] = None


class ComponentDependencies(FormxModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    disabled: Optional[DependencyCondition] = None
    enabled: Optional[DependencyCondition] = None
    visible: Optional[DependencyCondition] = None
    required: Optional[DependencyCondition] = None
    label: Optional[ComputedPropertySpec] = None
    placeholder: Optional[ComputedPropertySpec] = None
    value: Optional[ComputedPropertySpec] = None
    options: Optional[ComputedPropertySpec] = None
    filter_by: Union[FilterDependency, List[FilterDependency], None] = Field(None, alias="filterBy")
    reset_on: List[str] = Field(default_factory=list, alias="resetOn")

    @property
    def filters(self) -> List[FilterDependency]:
        if self.filter_by is None:
            return []
        if isinstance(self.filter_by, list):
            return self.filter_by
        return [self.filter_by]


class DependencyResult(FormxModel):
    disabled: Optional[bool] = None
    enabled: Optional[bool] = None
    visible: Optional[bool] = None
    required: Optional[bool] = None
    label: Any = None
    placeholder: Any = None
    value: Any = None
    options: Any = None
    filter_params: Dict[str, Any] = Field(default_factory=dict, alias="filterParams")


# ---------------- Validation ----------------

class ValidationRule(FormxModel):
    key: str
    args: Dict[str, Any] = Field(default_factory=dict)
    message: Optional[str] = None
    validate_when: Union[str, DependencyCondition, None] = Field(None, alias="validateWhen")

    @model_validator(mode="before")
    @classmethod
    def _bare_key(cls, data):
        if isinstance(data, str):
            return {"key": data}
        if isinstance(data, dict) and data.get("args") is None:
            data = {**data, "args": {}}
        return data


class ValidationSchema(FormxModel):
    validations: List[ValidationRule] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _bare_list(cls, data):
        if data is None:
            return {"validations": []}
        if isinstance(data, list):
            return {"validations": data}
        return data


class ValidationResult(FormxModel):
    success: bool
    errors: List[str] = Field(default_factory=list)


# ---------------- Actions ----------------

class ActionData(FormxModel):
    name: str
    type: str = "common"
    args: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _bare_name(cls, data):
        if isinstance(data, str):
            return {"name": data}
        if isinstance(data, dict) and data.get("args") is None:
            data = {**data, "args": {}}
        return data


class ActionDefinition(FormxModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    body: str = ""


# ---------------- Persisted form ----------------

class Language(FormxModel):
    code: str
    name: str


DEFAULT_LANGUAGES = [
    {"code": "en-US", "name": "English (US)"},
    {"code": "es-ES", "name": "Spanish (ES)"},
]


class FormMetadata(FormxModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    form_name: str = Field("", alias="formName")
    description: Optional[str] = None
    author: Optional[str] = None
    form_version: Optional[str] = Field(None, alias="formVersion")
    created_at: Optional[str] = Field(None, alias="createdAt")
    updated_at: Optional[str] = Field(None, alias="updatedAt")
    tags: Optional[List[str]] = None
    category: Optional[str] = None


class PersistedNode(FormxModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    key: str = Field(validation_alias=AliasChoices("key", "id"))
    type: str
    props: Dict[str, Any] = Field(default_factory=dict)
    children: Optional[List["PersistedNode"]] = None


PersistedNode.model_rebuild()


class PersistedForm(FormxModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    version: str
    id: Optional[str] = None
    metadata: FormMetadata = Field(default_factory=FormMetadata)
    form: PersistedNode
    default_language: str = Field(alias="defaultLanguage")
    languages: List[Language]
    localization: Dict[str, Dict[str, str]] = Field(default_factory=dict)
    actions: Optional[Dict[str, ActionDefinition]] = None
    form_validator: Optional[str] = Field(None, alias="formValidator")


class MigrationResult(FormxModel):
    success: bool
    migrated: bool = False
    version: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class RoundTripReport(FormxModel):
    success: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    component_count: Dict[str, int] = Field(default_factory=dict, alias="componentCount")


# ---------------- Runtime ----------------

class ComponentState(FormxModel):
    id: str
    type: str
    data_key: Optional[str] = Field(None, alias="dataKey")
    rendered: bool = True
    visible: bool = True
    disabled: bool = False
    required: bool = False
    label: Any = None
    placeholder: Any = None
    value: Any = None
    options: Any = None
    props: Dict[str, Any] = Field(default_factory=dict)
    filter_params: Dict[str, Any] = Field(default_factory=dict, alias="filterParams")
    dependent_fields: List[str] = Field(default_factory=list, alias="dependentFields")
