import re
from typing import Optional


HORA_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):([0-5][0-9])$")


def normalize_hora(value: str) -> str:
    """Accept ``H:MM`` or ``HH:MM`` and return the zero padded form."""
    match = HORA_PATTERN.match(value.strip())
    if not match:
        raise ValueError("Formato de hora inválido (HH:MM)")
    return f"{int(match.group(1)):02d}:{match.group(2)}"


def normalize_optional_hora(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    return normalize_hora(value)


def validate_url(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    cleaned = value.strip()
    if not cleaned.startswith(("http://", "https://")):
        raise ValueError("URL inválida")
    return cleaned
