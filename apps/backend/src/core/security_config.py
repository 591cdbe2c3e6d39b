"""Security configuration constants for the CVStream API.

This module centralizes security-related configuration including:
- Sensitive keys that should be sanitized from logs
- Error response field allow-lists per environment
"""

# Keys redacted from structured logs. Matching is by substring, so keep the
# entries specific enough not to catch ordinary streaming fields.
SENSITIVE_KEYS: set[str] = {
    # Authentication & Authorization
    "password",
    "secret",
    "token",
    "access_token",
    "refresh_token",
    "authorization",
    "auth_token",
    "api_key",
    "jwt",
    "csrf_token",
    "bearer",
    # Personal Identifiable Information
    "email",
    "phone",
    "phone_number",
    "address",
    "street_address",
    "home_address",
    # Uploaded documents and generated content
    "file_data",
    "attachment",
    "document_text",
    # Additional sensitive headers and fields
    "set-cookie",
    "cookie",
    "x-auth-token",
    "x-api-key",
    "x-csrf-token",
    "authentication",
    "auth",
}

# Production-only error response fields
# In production, error responses should only contain these fields to
# prevent information leakage
PRODUCTION_ERROR_FIELDS: set[str] = {
    "correlation_id",
    "type",
}

# Development error response fields (additional fields allowed in development)
DEVELOPMENT_ERROR_FIELDS: set[str] = PRODUCTION_ERROR_FIELDS | {
    "details",
    "traceback",
    "exception_type",
    "validation_errors",
}


def get_allowed_error_fields(environment: str) -> set[str]:
    """Get allowed error response fields based on environment.

    Args:
        environment: The application environment (production, development, etc.)

    Returns:
        Set of allowed field names for error responses
    """
    if environment == "production":
        return PRODUCTION_ERROR_FIELDS.copy()
    else:
        return DEVELOPMENT_ERROR_FIELDS.copy()


def is_sensitive_key(key: str) -> bool:
    """Check if a key should be considered sensitive and redacted.

    Args:
        key: The key name to check

    Returns:
        True if the key should be redacted, False otherwise
    """
    key_lower = key.lower()
    return any(sensitive in key_lower for sensitive in SENSITIVE_KEYS)
