import re
from typing import Optional

from app.core.config import PAT_CODE_LENGTH
from app.core.errors import ValidationError


def normalize_spaces(value) -> str:
    return re.sub(r"\s+", " ", str(value or "").strip())


def normalize_upper_text(value) -> Optional[str]:
    text = normalize_spaces(value)
    return text.upper() or None


def normalize_optional_text(value) -> Optional[str]:
    text = normalize_spaces(value)
    return text or None


def normalize_pat_code(value) -> str:
    raw = normalize_spaces(value)
    if not raw:
        raise ValidationError("PAT e obrigatorio.", fields=["asset_code"])
    compact = re.sub(r"[\s.\-/]+", "", raw)
    # apenas digitos ASCII
    if not re.fullmatch(r"[0-9]+", compact):
        raise ValidationError("PAT deve conter apenas numeros.", fields=["asset_code"])
    if len(compact) > PAT_CODE_LENGTH:
        raise ValidationError(
            f"PAT nao pode ter mais de {PAT_CODE_LENGTH} digitos.",
            fields=["asset_code"],
        )
    return compact.zfill(PAT_CODE_LENGTH)


def try_normalize_pat_code(value) -> Optional[str]:
    try:
        return normalize_pat_code(value)
    except ValidationError:
        return None
