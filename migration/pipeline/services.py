"""Service categories, services, and their category links."""

from __future__ import annotations

from dataclasses import dataclass

from migration.common.coercion import timestamp_or_default
from migration.dump.records import Category, LegacyService, Subcategory
from migration.pipeline.base import EntityPipeline, Extraction, ParentRef, TargetRecord, WriteStep, resolve_required
from migration.pipeline.ownership import OWNER_STYLIST

DEFAULT_SERVICE_TITLE = "Service"
MAX_TITLE_LENGTH = 100
DEFAULT_CURRENCY = "NOK"


@dataclass(frozen=True)
class CategoryRecord(TargetRecord):
    name: str
    description: str | None
    parent_legacy_id: str | None
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class ServiceRecord(TargetRecord):
    stylist_id: str
    title: str
    description: str | None
    price: float
    currency: str
    duration_minutes: int
    is_published: bool
    at_customer_place: bool
    at_stylist_place: bool
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class ServiceCategoryLink(TargetRecord):
    service_legacy_id: str
    category_legacy_id: str


def _truncate_title(text: str) -> str:
    if len(text) <= MAX_TITLE_LENGTH:
        return text
    return text[: MAX_TITLE_LENGTH - 3] + "..."


def split_description(description: str | None) -> tuple[str, str | None]:
    """First non-empty line becomes the title; the remainder is the description."""
    lines = [line.strip() for line in (description or "").split("\n")]
    lines = [line for line in lines if line]
    if not lines:
        return DEFAULT_SERVICE_TITLE, None
    if len(lines) == 1:
        text = lines[0]
        if len(text) <= MAX_TITLE_LENGTH:
            return text, None
        return _truncate_title(text), text
    rest = "\n".join(lines[1:])
    return _truncate_title(lines[0]), rest or None


class ServicesPipeline(EntityPipeline):
    entity = "services"
    requires = ("stylist",)

    def transform(self) -> Extraction:
        extraction = Extraction()
        processed_at = self.ctx.processed_at

        parents = self.typed_rows(extraction, "category", Category.from_row)
        parent_ids = {category.id for category in parents}
        for category in parents:
            extraction.add(
                "parent_categories",
                CategoryRecord(
                    legacy_id=category.id,
                    name=category.name,
                    description=category.description,
                    parent_legacy_id=None,
                    created_at=timestamp_or_default(category.created_at, processed_at),
                    updated_at=timestamp_or_default(category.updated_at, processed_at),
                ),
            )

        subcategory_ids: set[str] = set()
        for subcategory in self.typed_rows(extraction, "subcategory", Subcategory.from_row):
            if subcategory.category_id not in parent_ids:
                self.skip(
                    extraction,
                    subcategory.id,
                    f"Parent category {subcategory.category_id} not found",
                    record=subcategory,
                )
                continue
            subcategory_ids.add(subcategory.id)
            extraction.add(
                "categories",
                CategoryRecord(
                    legacy_id=subcategory.id,
                    name=subcategory.name,
                    description=subcategory.description,
                    parent_legacy_id=subcategory.category_id,
                    created_at=timestamp_or_default(subcategory.created_at, processed_at),
                    updated_at=timestamp_or_default(subcategory.updated_at, processed_at),
                ),
            )

        for service in self.typed_rows(extraction, "service", LegacyService.from_row):
            stylist_id = self.ctx.mappings.get(OWNER_STYLIST, service.stylist_id)
            if stylist_id is None:
                self.skip(extraction, service.id, f"No migrated stylist for stylist_id={service.stylist_id}")
                continue
            title, description = split_description(service.description)
            extraction.add(
                "services",
                ServiceRecord(
                    legacy_id=service.id,
                    stylist_id=stylist_id,
                    title=title,
                    description=description,
                    price=float(service.amount),
                    currency=service.currency or DEFAULT_CURRENCY,
                    duration_minutes=service.duration,
                    is_published=service.is_published,
                    at_customer_place=False,
                    at_stylist_place=True,
                    created_at=timestamp_or_default(service.created_at, processed_at),
                    updated_at=timestamp_or_default(service.updated_at, processed_at),
                ),
            )
            if service.subcategory_id in subcategory_ids:
                extraction.add(
                    "service_categories",
                    ServiceCategoryLink(
                        legacy_id=f"{service.id}:{service.subcategory_id}",
                        service_legacy_id=service.id,
                        category_legacy_id=service.subcategory_id,
                    ),
                )
            elif service.subcategory_id is not None:
                extraction.exclude("unknown_subcategory_link")
        return extraction

    def _category_row(self, record: CategoryRecord) -> dict:
        parent_id = None
        if record.parent_legacy_id is not None:
            parent_id = resolve_required(self.ctx.mappings, "category", record.parent_legacy_id, "parent category")
        return {
            "id": record.legacy_id,
            "name": record.name,
            "description": record.description,
            "parent_category_id": parent_id,
            "created_at": record.created_at,
            "updated_at": record.updated_at,
        }

    def _service_row(self, record: ServiceRecord) -> dict:
        return {
            "id": record.legacy_id,
            "stylist_id": record.stylist_id,
            "title": record.title,
            "description": record.description,
            "price": record.price,
            "currency": record.currency,
            "duration_minutes": record.duration_minutes,
            "is_published": record.is_published,
            "at_customer_place": record.at_customer_place,
            "at_stylist_place": record.at_stylist_place,
            "created_at": record.created_at,
            "updated_at": record.updated_at,
        }

    def _link_row(self, record: ServiceCategoryLink) -> dict:
        return {
            "service_id": resolve_required(self.ctx.mappings, "service", record.service_legacy_id, "service"),
            "category_id": resolve_required(self.ctx.mappings, "category", record.category_legacy_id, "category"),
        }

    def write_steps(self) -> list[WriteStep]:
        category_step = dict(
            table="service_categories",
            record_type=CategoryRecord,
            natural_key=("id",),
            to_row=self._category_row,
            mapping_keys=lambda record: [("category", record.legacy_id)],
            mapping_entities=("category",),
            sample_fields=("name", "parent_category_id"),
        )
        return [
            WriteStep(collection="parent_categories", **category_step),
            WriteStep(
                collection="categories",
                parent_refs=(ParentRef("parent_category_id", "service_categories", required=False),),
                **category_step,
            ),
            WriteStep(
                collection="services",
                table="services",
                record_type=ServiceRecord,
                natural_key=("id",),
                to_row=self._service_row,
                mapping_keys=lambda record: [("service", record.legacy_id)],
                mapping_entities=("service",),
                parent_refs=(ParentRef("stylist_id", "profiles"),),
                sample_fields=("title", "price", "duration_minutes", "is_published"),
            ),
            WriteStep(
                collection="service_categories",
                table="service_service_categories",
                record_type=ServiceCategoryLink,
                natural_key=("service_id", "category_id"),
                to_row=self._link_row,
                parent_refs=(
                    ParentRef("service_id", "services"),
                    ParentRef("category_id", "service_categories"),
                ),
            ),
        ]
