from collections import OrderedDict
from typing import Any, Optional

# Single source of truth: type name -> class
COMPONENT_TYPES = OrderedDict()


def register_component(cls):
    """
    Registers a component class under its widget type name.
    Usage: @register_component above each component class.
    """
    COMPONENT_TYPES[cls().kind] = cls
    return cls


class _BaseComponent:
    # children are allowed
    container = False
    # children are rendered once per row of the bound array
    repeats_children = False
    # value type used by the validation engine; None for non-input widgets
    data_type: Optional[str] = None
    # value used when neither a dependency nor a literal prop supplies one
    default: Any = None

    @property
    def kind(self):
        n = self.__class__.__name__
        return n[:-9] if n.endswith("Component") else n

    @property
    def is_input(self) -> bool:
        return self.data_type is not None

    def default_value(self):
        # fresh copy for mutable defaults
        if isinstance(self.default, (list, dict)):
            return type(self.default)(self.default)
        return self.default


def get_component_type(type_name: str) -> Optional[_BaseComponent]:
    cls = COMPONENT_TYPES.get(type_name)
    return cls() if cls else None


def is_container(type_name: str) -> bool:
    comp = get_component_type(type_name)
    return bool(comp and comp.container)


def data_type_for(type_name: str) -> str:
    comp = get_component_type(type_name)
    return (comp.data_type if comp else None) or "string"


# ---------------- Display ----------------

@register_component
class LabelComponent(_BaseComponent):
    pass

@register_component
class HeadingComponent(_BaseComponent):
    pass

@register_component
class LinkComponent(_BaseComponent):
    pass

@register_component
class HRuleComponent(_BaseComponent):
    pass

@register_component
class ButtonComponent(_BaseComponent):
    pass

@register_component
class ImageComponent(_BaseComponent):
    pass


# ---------------- Text / choice inputs ----------------

@register_component
class TextInputComponent(_BaseComponent):
    data_type = "string"
    default = ""

@register_component
class TextAreaComponent(_BaseComponent):
    data_type = "string"
    default = ""

@register_component
class DateTimeComponent(_BaseComponent):
    data_type = "date"

@register_component
class DateTimeCbComponent(_BaseComponent):
    data_type = "date"

@register_component
class SelectComponent(_BaseComponent):
    data_type = "string"
    default = ""

@register_component
class DropDownComponent(_BaseComponent):
    data_type = "string"
    default = ""

@register_component
class AmountComponent(_BaseComponent):
    data_type = "number"

@register_component
class TreeComponent(_BaseComponent):
    data_type = "array"
    default = []

@register_component
class AutoCompleteComponent(_BaseComponent):
    data_type = "string"
    default = ""

@register_component
class CurrencyExRateComponent(_BaseComponent):
    data_type = "number"

@register_component
class AutoBrowseComponent(_BaseComponent):
    data_type = "string"
    default = ""

@register_component
class RadioGroupComponent(_BaseComponent):
    data_type = "string"
    default = ""

@register_component
class ToggleComponent(_BaseComponent):
    data_type = "boolean"
    default = False

@register_component
class CheckBoxComponent(_BaseComponent):
    data_type = "boolean"
    default = False

@register_component
class CheckBoxGroupComponent(_BaseComponent):
    data_type = "array"
    default = []


# ---------------- Layout ----------------

@register_component
class FormComponent(_BaseComponent):
    container = True

@register_component
class HeaderComponent(_BaseComponent):
    container = True

@register_component
class FooterComponent(_BaseComponent):
    container = True

@register_component
class SideNavComponent(_BaseComponent):
    container = True

@register_component
class ContainerComponent(_BaseComponent):
    container = True

@register_component
class ViewStackComponent(_BaseComponent):
    container = True

@register_component
class GridComponent(_BaseComponent):
    container = True

@register_component
class WizardComponent(_BaseComponent):
    container = True


# ---------------- Files / location ----------------

@register_component
class UploadComponent(_BaseComponent):
    data_type = "object"

@register_component
class MultiUploadComponent(_BaseComponent):
    data_type = "array"
    default = []

@register_component
class MapLocationPickerComponent(_BaseComponent):
    data_type = "object"


# ---------------- Collections ----------------

@register_component
class RepeaterComponent(_BaseComponent):
    """Renders its children once per row of the array bound at its dataKey."""
    container = True
    repeats_children = True
    data_type = "array"
    default = []

@register_component
class RepeaterExComponent(RepeaterComponent):
    pass

@register_component
class ListComponent(_BaseComponent):
    data_type = "array"
    default = []

@register_component
class DataGridComponent(_BaseComponent):
    data_type = "array"
    default = []

@register_component
class DataBrowseComponent(_BaseComponent):
    data_type = "object"


# ---------------- Calendars / payment ----------------

@register_component
class CalendarDayComponent(_BaseComponent):
    data_type = "date"

@register_component
class CalendarWeekComponent(_BaseComponent):
    data_type = "date"

@register_component
class CalendarMonthComponent(_BaseComponent):
    data_type = "date"

@register_component
class CalendarComponent(_BaseComponent):
    data_type = "date"

@register_component
class CreditCardComponent(_BaseComponent):
    data_type = "object"


# ---------------- Validator widgets ----------------

@register_component
class RequiredFieldValidatorComponent(_BaseComponent):
    pass

@register_component
class RangeValidatorComponent(_BaseComponent):
    pass

@register_component
class RegExValidatorComponent(_BaseComponent):
    pass


# Legacy component-library type names found in older saved forms
LEGACY_TYPE_NAMES = {
    "MuiTextField": "TextInput",
    "MuiSelect": "Select",
    "MuiButton": "Button",
    "MuiCheckbox": "CheckBox",
    "MuiRadioGroup": "RadioGroup",
    "MuiSwitch": "Toggle",
    "MuiDateTimePicker": "DateTime",
    "MuiImage": "Image",
    "MuiBox": "Container",
    "MuiForm": "Form",
    "MuiAppBar": "Header",
    "MuiPaper": "Footer",
    "MuiDrawer": "SideNav",
    "MuiTabs": "ViewStack",
    "MuiAutocomplete": "AutoComplete",
    "MuiRepeater": "Repeater",
    "MuiList": "List",
    "MuiDataGrid": "DataGrid",
    "MuiCalendar": "Calendar",
    "MuiStepper": "Wizard",
}
