from trackmyexpense.validation.validator import issues_from_error, validate_input

__all__ = ["issues_from_error", "validate_input"]
