"""Data models for cloud payloads and the static category catalog."""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

_DEFAULT_DATA_PATH = Path(__file__).parent / "data" / "categories.json"


class DeviceStatusEntry(BaseModel):
    """One ``{code, value}`` pair from a device status array."""

    code: str
    value: bool | int | float | str | dict[str, Any] | list[Any] | None = None


class Home(BaseModel):
    """A home (device group) owned by the linked account."""

    model_config = ConfigDict(coerce_numbers_to_str=True, extra="ignore")

    home_id: str = Field(
        validation_alias=AliasChoices("home_id", "homeId", "ownerId", "owner_id")
    )
    name: str = ""


class CloudDevice(BaseModel):
    """A device as described by the cloud device endpoints."""

    model_config = ConfigDict(coerce_numbers_to_str=True, extra="ignore")

    id: str = Field(validation_alias=AliasChoices("id", "devId", "device_id"))
    name: str = ""
    category: str = ""
    product_id: str | None = Field(
        default=None, validation_alias=AliasChoices("product_id", "productId")
    )
    product_name: str | None = Field(
        default=None, validation_alias=AliasChoices("product_name", "productName")
    )
    online: bool = Field(
        default=False, validation_alias=AliasChoices("online", "isOnline")
    )
    status: list[DeviceStatusEntry] = Field(default_factory=list)

    @property
    def status_codes(self) -> frozenset[str]:
        return frozenset(entry.code for entry in self.status)


class CategoryGroup(BaseModel):
    """Provider category codes that share one device type."""

    device_type: str
    categories: list[str]


class CategoryCatalog(BaseModel):
    """Static lookup from provider category to device type."""

    default_device_type: str = "switch"
    groups: list[CategoryGroup]

    def device_type_for(self, category: str | None) -> str:
        """Return the device type for ``category``, defaulting for unknown ones."""

        for group in self.groups:
            if category in group.categories:
                return group.device_type
        return self.default_device_type


def load_category_catalog(path: Path | None = None) -> CategoryCatalog:
    """Load the category catalog definition from JSON."""

    data_path = path or _DEFAULT_DATA_PATH
    with data_path.open("r", encoding="utf-8") as fp:
        payload = json.load(fp)
    return CategoryCatalog.model_validate(payload)


@lru_cache(maxsize=1)
def default_category_catalog() -> CategoryCatalog:
    return load_category_catalog()
