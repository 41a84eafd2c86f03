import json
import logging
import os
import re
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from app.core.config import AVATAR_MAX_BYTES, SUPABASE_AVATAR_BUCKET, SUPABASE_SERVICE_ROLE_KEY, SUPABASE_URL
from app.core.errors import UpstreamError, ValidationError
from app.services import supabase

logger = logging.getLogger("uvicorn.error")

AVATAR_SUFFIXES = (".jpg", ".jpeg", ".png", ".webp", ".gif")
CONTENT_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
}


def get_uploads_base_dir() -> Path:
    uploads_dir = os.getenv("UPLOADS_DIR")
    if uploads_dir:
        base_dir = Path(uploads_dir)
    else:
        base_dir = Path(__file__).resolve().parents[2] / "uploads"
    base_dir.mkdir(parents=True, exist_ok=True)
    return base_dir


def get_avatars_dir() -> Path:
    avatars_dir = get_uploads_base_dir() / "avatars"
    avatars_dir.mkdir(parents=True, exist_ok=True)
    return avatars_dir


def sanitize_segment(value: str) -> str:
    cleaned = re.sub(r"[^a-zA-Z0-9_-]+", "_", value or "")
    cleaned = cleaned.strip("_")
    return cleaned[:64] or "usuario"


def ensure_avatar_image(filename: Optional[str], content_type: Optional[str], size: int) -> str:
    suffix = Path(filename or "").suffix.lower()
    if suffix not in AVATAR_SUFFIXES:
        raise ValidationError("A foto precisa ser uma imagem (.jpg, .jpeg, .png, .webp ou .gif).")
    content_type = (content_type or "").lower()
    if content_type and not content_type.startswith("image/"):
        raise ValidationError("Tipo de arquivo invalido para a foto.")
    if size <= 0:
        raise ValidationError("Arquivo de imagem vazio.")
    if size > AVATAR_MAX_BYTES:
        raise ValidationError(f"A imagem deve ter no máximo {AVATAR_MAX_BYTES // (1024 * 1024)}MB")
    return suffix


def avatar_object_paths(user_id: str) -> list[str]:
    folder = sanitize_segment(user_id)
    return [f"{folder}/avatar{suffix}" for suffix in AVATAR_SUFFIXES]


def _storage_enabled() -> bool:
    return bool(SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY and SUPABASE_AVATAR_BUCKET)


def _public_url(object_path: str) -> str:
    return (
        f"{SUPABASE_URL}/storage/v1/object/public/"
        f"{quote(SUPABASE_AVATAR_BUCKET, safe='')}/{quote(object_path, safe='/')}"
    )


def remove_avatar_files(user_id: str) -> None:
    """Remove todas as variações conhecidas de avatar do usuário."""
    object_paths = avatar_object_paths(user_id)

    if _storage_enabled():
        response_status, response_payload = supabase.supabase_request(
            method="DELETE",
            path=f"/storage/v1/object/{quote(SUPABASE_AVATAR_BUCKET, safe='')}",
            api_key=SUPABASE_SERVICE_ROLE_KEY,
            body=json.dumps({"prefixes": object_paths}).encode("utf-8"),
            content_type="application/json",
        )
        if response_status not in {200, 204, 404}:
            logger.warning(
                "Falha ao remover avatares antigos de %s (status %s): %s",
                user_id,
                response_status,
                response_payload[:180],
            )
        return

    avatars_dir = get_avatars_dir().resolve()
    for object_path in object_paths:
        target_path = (avatars_dir / object_path).resolve()
        try:
            target_path.relative_to(avatars_dir)
        except ValueError:
            continue
        target_path.unlink(missing_ok=True)


def store_avatar(user_id: str, filename: Optional[str], content_type: Optional[str], content: bytes) -> str:
    suffix = ensure_avatar_image(filename, content_type, len(content))
    object_path = f"{sanitize_segment(user_id)}/avatar{suffix}"

    remove_avatar_files(user_id)

    if _storage_enabled():
        response_status, response_payload = supabase.supabase_request(
            method="POST",
            path=(
                f"/storage/v1/object/{quote(SUPABASE_AVATAR_BUCKET, safe='')}/"
                f"{quote(object_path, safe='/')}"
            ),
            api_key=SUPABASE_SERVICE_ROLE_KEY,
            body=content,
            content_type=CONTENT_TYPES[suffix],
            extra_headers={"x-upsert": "true"},
        )
        if response_status not in {200, 201}:
            raise UpstreamError(
                "Erro ao fazer upload da foto. "
                f"Status {response_status}: {(response_payload or '').strip()[:180]}"
            )
        return _public_url(object_path)

    target_path = get_avatars_dir() / object_path
    target_path.parent.mkdir(parents=True, exist_ok=True)
    target_path.write_bytes(content)
    return f"/uploads/avatars/{object_path}"
