from .response_processor import ResponseProcessor, schema_violations, validate_response_schema

__all__ = ["ResponseProcessor", "schema_violations", "validate_response_schema"]
