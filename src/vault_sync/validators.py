"""
Path validation for the vault sync server.

All paths exchanged between the local vault, the metadata snapshot and the
remote tree live in one normalised, case-sensitive, forward-slash space.
"""


def format_validation_error(field_name: str, reason: str) -> str:
    """
    Generate consistent error message for validation failures.

    Args:
        field_name: Human-readable field name (e.g., "Path")
        reason: Description of validation failure (e.g., "cannot be empty")

    Returns:
        Formatted error message string
    """
    return f"{field_name} {reason}"


def normalize_path(path: str) -> str:
    """
    Normalise a vault-relative path.

    Backslashes become forward slashes, repeated slashes collapse, ``.``
    segments and leading/trailing slashes are dropped. Case is preserved.
    The vault root normalises to ``""``.

    Args:
        path: Raw path string

    Returns:
        Normalised path string
    """
    parts = [
        part
        for part in path.replace("\\", "/").split("/")
        if part not in ("", ".")
    ]
    return "/".join(parts)


def validate_relative_path(path: str) -> tuple[bool, str]:
    """
    Validate a vault-relative path.

    Args:
        path: The path to validate (normalised or not)

    Returns:
        Tuple of (is_valid, error_message).
        Returns (True, "") if valid, (False, reason) if invalid.

    Validation rules:
        - Cannot be empty or whitespace-only
        - Cannot be absolute
        - Cannot contain '..' segments (path traversal protection)
    """
    if not path or not path.strip():
        return (False, format_validation_error("Path", "cannot be empty"))

    if path.startswith("/") or (len(path) > 1 and path[1] == ":"):
        return (
            False,
            format_validation_error("Path", "must be vault-relative"),
        )

    if ".." in path.replace("\\", "/").split("/"):
        return (
            False,
            format_validation_error("Path", "cannot contain '..'"),
        )

    return (True, "")
