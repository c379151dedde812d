"""
Structural validation of a ``variables_config`` payload before it is written.

Expected shape::

    {
      "categoryName": {
        "label": "Category Display Name",       # required
        "description": "...",                   # optional (warning)
        "variableName": {
          "type": "number|select|slider|toggle",
          "label": "Display Label",
          "default": <value>,
          "adminEditable": true|false,          # optional
          ...type-specific fields
        }
      },
      "formulaType": "two_tier"                 # scalar metadata is allowed
    }
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List

VALID_TYPES = ("number", "select", "slider", "toggle")
RANGED_TYPES = ("number", "slider")

# An option must carry at least one of these to have any pricing effect
_OPTION_EFFECT_KEYS = ("value", "multiplier", "laborPercentage", "materialWaste", "fixedLaborHours")


@dataclass
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"valid": self.valid, "errors": list(self.errors), "warnings": list(self.warnings)}


def validate_variables_config(config: Any) -> ValidationResult:
    errors: List[str] = []
    warnings: List[str] = []

    if not isinstance(config, dict):
        return ValidationResult(False, ["variables_config must be a valid object"], warnings)

    categories = {k: v for k, v in config.items() if isinstance(v, dict)}
    for key, value in config.items():
        if not isinstance(value, dict) and not isinstance(value, (str, int, float, bool)):
            errors.append(f"Category '{key}' must be a valid object")
    if not categories:
        errors.append("variables_config must have at least one category")
        return ValidationResult(False, errors, warnings)

    for category_key, category in categories.items():
        if not isinstance(category.get("label"), str) or not category.get("label"):
            errors.append(f"Category '{category_key}' missing required 'label' field")
        if not category.get("description"):
            warnings.append(f"Category '{category_key}' missing optional 'description' field")

        variables = [(k, v) for k, v in category.items() if k not in ("label", "description")]
        if not variables:
            warnings.append(f"Category '{category_key}' has no variables defined")

        for var_key, variable in variables:
            path = f"{category_key}.{var_key}"
            if not isinstance(variable, dict):
                errors.append(f"Variable '{path}' must be a valid object")
                continue
            _validate_variable(path, variable, errors, warnings)

    return ValidationResult(not errors, errors, warnings)


def _validate_variable(path: str, variable: Dict[str, Any], errors: List[str], warnings: List[str]) -> None:
    var_type = variable.get("type")
    if not var_type:
        errors.append(f"Variable '{path}' missing required 'type' field")
    elif var_type not in VALID_TYPES:
        errors.append(
            f"Variable '{path}' has invalid type '{var_type}'. Must be one of: {', '.join(VALID_TYPES)}"
        )

    if not isinstance(variable.get("label"), str) or not variable.get("label"):
        errors.append(f"Variable '{path}' missing required 'label' field")
    if "default" not in variable:
        errors.append(f"Variable '{path}' missing required 'default' field")
    if not variable.get("description"):
        warnings.append(f"Variable '{path}' missing optional 'description' field (recommended for user clarity)")

    if var_type in RANGED_TYPES:
        _validate_range(path, variable, errors, warnings)
    elif var_type == "select":
        _validate_options(path, variable, errors)
    elif var_type == "toggle" and "default" in variable and not isinstance(variable["default"], bool):
        errors.append(f"Variable '{path}' of type 'toggle' must have a boolean default")

    if "adminEditable" in variable and not isinstance(variable["adminEditable"], bool):
        errors.append(f"Variable '{path}' has invalid 'adminEditable' value. Must be boolean.")


def _validate_range(path: str, variable: Dict[str, Any], errors: List[str], warnings: List[str]) -> None:
    var_type = variable["type"]
    low, high = variable.get("min"), variable.get("max")
    if low is None:
        errors.append(f"Variable '{path}' of type '{var_type}' missing required 'min' field")
    if high is None:
        errors.append(f"Variable '{path}' of type '{var_type}' missing required 'max' field")
    if not _is_number(low) or not _is_number(high):
        if low is not None and high is not None:
            errors.append(f"Variable '{path}' has non-numeric 'min'/'max'")
    else:
        if low >= high:
            errors.append(f"Variable '{path}' has min ({low}) >= max ({high})")
        default = variable.get("default")
        if _is_number(default) and not low <= default <= high:
            errors.append(f"Variable '{path}' default value ({default}) is outside range [{low}, {high}]")
    if not variable.get("unit"):
        warnings.append(f"Variable '{path}' missing optional 'unit' field (recommended for user clarity)")


def _validate_options(path: str, variable: Dict[str, Any], errors: List[str]) -> None:
    options = variable.get("options")
    if not isinstance(options, dict):
        errors.append(f"Variable '{path}' of type 'select' missing required 'options' field")
        return
    if not options:
        errors.append(f"Variable '{path}' has empty 'options' object")

    for option_key, option in options.items():
        option_path = f"{path}.options.{option_key}"
        if not isinstance(option, dict):
            errors.append(f"Option '{option_path}' must be a valid object")
            continue
        if not isinstance(option.get("label"), str) or not option.get("label"):
            errors.append(f"Option '{option_path}' missing required 'label' field")
        if not any(k in option for k in _OPTION_EFFECT_KEYS):
            errors.append(f"Option '{option_path}' missing required 'value' field")

    default = variable.get("default")
    if "default" in variable and (not isinstance(default, str) or default not in options):
        errors.append(
            f"Variable '{path}' default value '{default}' is not a valid option key. "
            f"Valid options: [{', '.join(options)}]"
        )


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
