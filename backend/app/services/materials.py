# backend/app/services/materials.py
"""
Marketing materials library.

Admins maintain banners, PDFs and WhatsApp/Instagram message templates;
ambassadors see the active ones grouped by type and every download (or
template copy) bumps download_count atomically.
"""
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.constants import FILE_MATERIAL_TYPES, MATERIAL_TYPES
from backend.app.core.exceptions import NotFoundError, ServiceError
from backend.app.core.logging import get_logger
from backend.app.core.metrics import material_downloads_total
from backend.app.models.material import AmbassadorMaterial

logger = get_logger(__name__)

EDITABLE_FIELDS = (
    "title", "description", "type", "category", "file_url",
    "content", "dimensions", "display_order", "active",
)


class MaterialServiceError(ServiceError):
    pass


class InvalidMaterialError(MaterialServiceError):
    def __init__(self, message: str):
        super().__init__(message, 400)


class MaterialNotFoundError(NotFoundError):
    def __init__(self, material_id: int):
        super().__init__(f"Material {material_id} não encontrado")


def material_to_dict(m: AmbassadorMaterial) -> Dict[str, Any]:
    return {
        "id": m.id,
        "title": m.title,
        "description": m.description,
        "type": m.type,
        "category": m.category,
        "file_url": m.file_url,
        "content": m.content,
        "dimensions": m.dimensions,
        "display_order": m.display_order,
        "active": m.active,
        "download_count": m.download_count,
        "created_at": m.created_at.isoformat() if m.created_at else None,
        "updated_at": m.updated_at.isoformat() if m.updated_at else None,
    }


def validate_material(m: AmbassadorMaterial) -> None:
    """A material needs a title, a known type, and a file (banner/pdf) or text (templates)."""
    if not (m.title or "").strip():
        raise InvalidMaterialError("Informe o título do material")
    if m.type not in MATERIAL_TYPES:
        raise InvalidMaterialError(f"Tipo de material inválido: {m.type}")
    if m.type in FILE_MATERIAL_TYPES:
        if not m.file_url:
            raise InvalidMaterialError("Banners e PDFs precisam de um arquivo")
    elif not (m.content or "").strip():
        raise InvalidMaterialError("Modelos de mensagem precisam de um texto")


class MaterialService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_material(self, material_id: int) -> AmbassadorMaterial:
        material = await self.session.get(AmbassadorMaterial, material_id)
        if not material:
            raise MaterialNotFoundError(material_id)
        return material

    async def list_materials(self, type: Optional[str] = None, active_only: bool = False) -> List[AmbassadorMaterial]:
        """Ordered by type, then display_order. Ambassadors only see active materials."""
        if type is not None and type not in MATERIAL_TYPES:
            raise InvalidMaterialError(f"Tipo de material inválido: {type}")
        q = select(AmbassadorMaterial).order_by(
            AmbassadorMaterial.type,
            AmbassadorMaterial.display_order,
            AmbassadorMaterial.id,
        )
        if type is not None:
            q = q.where(AmbassadorMaterial.type == type)
        if active_only:
            q = q.where(AmbassadorMaterial.active == True)  # noqa: E712
        result = await self.session.execute(q)
        return list(result.scalars().all())

    async def create_material(self, **fields: Any) -> AmbassadorMaterial:
        material = AmbassadorMaterial(**{k: v for k, v in fields.items() if k in EDITABLE_FIELDS})
        if material.title:
            material.title = material.title.strip()
        validate_material(material)
        self.session.add(material)
        await self.session.flush()
        logger.info("Material created", material_id=material.id, type=material.type)
        return material

    async def update_material(self, material_id: int, **updates: Any) -> AmbassadorMaterial:
        """Partial update; the resulting material must still be valid."""
        material = await self.get_material(material_id)
        for key, value in updates.items():
            if key in EDITABLE_FIELDS:
                setattr(material, key, value.strip() if key == "title" and value else value)
        validate_material(material)
        await self.session.flush()
        logger.info("Material updated", material_id=material_id, fields=sorted(updates))
        return material

    async def delete_material(self, material_id: int) -> None:
        material = await self.get_material(material_id)
        await self.session.delete(material)
        await self.session.flush()
        logger.info("Material deleted", material_id=material_id, file_url=material.file_url)

    async def register_download(self, material_id: int) -> AmbassadorMaterial:
        """Count a download or template copy. Inactive materials are not offered."""
        material = await self.get_material(material_id)
        if not material.active:
            raise MaterialNotFoundError(material_id)
        await self.session.execute(
            update(AmbassadorMaterial)
            .where(AmbassadorMaterial.id == material_id)
            .values(download_count=AmbassadorMaterial.download_count + 1)
        )
        await self.session.flush()
        await self.session.refresh(material)
        material_downloads_total.labels(type=material.type).inc()
        return material
