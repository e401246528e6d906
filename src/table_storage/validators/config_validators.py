import re

# Azure Table Storage: 3-63 characters, alphanumeric only, must not start with a digit.
_TABLE_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9]{2,62}$")


def to_uppercase(value: str | None) -> str | None:
    """
    Converts a string to uppercase if it's not None.
    """
    if value is None:
        return None
    return value.upper()

def to_lowercase(value: str | None) -> str | None:
    """
    Converts a string to lowercase if it's not None.
    """
    if value is None:
        return None
    return value.lower()

def validate_table_name(value: str) -> str:
    """
    Return `value` unchanged if it is a legal table name, otherwise raise ValueError.
    """
    if not _TABLE_NAME_RE.match(value or ""):
        raise ValueError(
            f"Invalid table name {value!r}: expected 3-63 alphanumeric characters starting with a letter"
        )
    return value
