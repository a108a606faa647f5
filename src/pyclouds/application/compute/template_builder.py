"""Choose hardware, image and location matching a set of criteria."""

import re
from typing import Optional

from pyclouds.domain.base.ports.compute_port import ComputeServiceAdapter
from pyclouds.domain.compute.exceptions import NoSuchElementError
from pyclouds.domain.compute.models import (
    Hardware,
    Image,
    Location,
    LocationScope,
    OsFamily,
    Template,
    TemplateOptions,
)

_SCOPE_RANK = {
    LocationScope.HOST: 0,
    LocationScope.ZONE: 1,
    LocationScope.REGION: 2,
    LocationScope.PROVIDER: 3,
}


class TemplateBuilder:
    """
    Fluent builder for a ``Template``.

    Unset criteria match everything. Among matching hardware the smallest
    profile (fewest cores, then least RAM) wins unless ``fastest`` or
    ``biggest`` is requested.
    """

    def __init__(self, adapter: ComputeServiceAdapter) -> None:
        self._adapter = adapter
        self._hardware_id: Optional[str] = None
        self._image_id: Optional[str] = None
        self._location_id: Optional[str] = None
        self._os_family: Optional[OsFamily] = None
        self._os_version_pattern: Optional[str] = None
        self._image_name_pattern: Optional[str] = None
        self._min_ram: int = 0
        self._min_cores: float = 0
        self._hardware_order = "smallest"
        self._options = TemplateOptions()

    def hardware_id(self, hardware_id: str) -> "TemplateBuilder":
        self._hardware_id = hardware_id
        return self

    def image_id(self, image_id: str) -> "TemplateBuilder":
        self._image_id = image_id
        return self

    def location_id(self, location_id: str) -> "TemplateBuilder":
        self._location_id = location_id
        return self

    def os_family(self, os_family: OsFamily) -> "TemplateBuilder":
        self._os_family = os_family
        return self

    def os_version_matches(self, pattern: str) -> "TemplateBuilder":
        self._os_version_pattern = pattern
        return self

    def image_name_matches(self, pattern: str) -> "TemplateBuilder":
        self._image_name_pattern = pattern
        return self

    def min_ram(self, megabytes: int) -> "TemplateBuilder":
        if megabytes < 0:
            raise ValueError("min_ram cannot be negative")
        self._min_ram = megabytes
        return self

    def min_cores(self, cores: float) -> "TemplateBuilder":
        if cores < 0:
            raise ValueError("min_cores cannot be negative")
        self._min_cores = cores
        return self

    def smallest(self) -> "TemplateBuilder":
        self._hardware_order = "smallest"
        return self

    def fastest(self) -> "TemplateBuilder":
        self._hardware_order = "fastest"
        return self

    def biggest(self) -> "TemplateBuilder":
        self._hardware_order = "biggest"
        return self

    def options(self, options: TemplateOptions) -> "TemplateBuilder":
        self._options = options
        return self

    def from_template(self, template: Template) -> "TemplateBuilder":
        self._hardware_id = template.hardware.id
        self._image_id = template.image.id
        self._location_id = template.location.id
        self._options = template.options.model_copy(deep=True)
        return self

    def build(self) -> Template:
        """
        :raises NoSuchElementError: when no location, image or hardware matches
        """
        locations = list(self._adapter.list_locations())
        location = self._resolve_location(locations)
        scope_ids = self._location_ids_in_scope(location, locations)

        image = self._resolve_image(scope_ids)
        hardware = self._resolve_hardware(scope_ids)
        return Template(
            hardware=hardware,
            image=image,
            location=location,
            options=self._options.model_copy(deep=True),
        )

    def _resolve_location(self, locations: list[Location]) -> Location:
        if not locations:
            raise NoSuchElementError("no locations available")
        if self._location_id is not None:
            for location in locations:
                if location.id == self._location_id:
                    return location
            raise NoSuchElementError(
                f"location id {self._location_id} not found in {[l.id for l in locations]}",
                details={"location_id": self._location_id},
            )
        # the most specific assignable location
        return min(locations, key=lambda l: (_SCOPE_RANK[l.scope], l.id))

    @staticmethod
    def _location_ids_in_scope(location: Location, locations: list[Location]) -> set[Optional[str]]:
        by_id = {l.id: l for l in locations}
        ids: set[Optional[str]] = {None}
        current: Optional[Location] = location
        while current is not None and current.id not in ids:
            ids.add(current.id)
            current = by_id.get(current.parent_id) if current.parent_id else None
        return ids

    def _resolve_image(self, scope_ids: set[Optional[str]]) -> Image:
        images = [i for i in self._adapter.list_images() if i.location_id in scope_ids]
        if self._image_id is not None:
            images = [i for i in images if i.id == self._image_id]
        if self._os_family is not None:
            images = [i for i in images if i.os_family == self._os_family]
        if self._os_version_pattern is not None:
            pattern = re.compile(self._os_version_pattern)
            images = [i for i in images if i.os_version and pattern.search(i.os_version)]
        if self._image_name_pattern is not None:
            pattern = re.compile(self._image_name_pattern)
            images = [i for i in images if i.name and pattern.search(i.name)]
        if not images:
            raise NoSuchElementError(f"no image matched {self._describe_image_criteria()}")
        return max(images, key=lambda i: (i.is_64bit, i.os_version or "", i.name or "", i.id))

    def _resolve_hardware(self, scope_ids: set[Optional[str]]) -> Hardware:
        profiles = [h for h in self._adapter.list_hardware_profiles() if h.location_id in scope_ids]
        if self._hardware_id is not None:
            profiles = [h for h in profiles if h.id == self._hardware_id]
        profiles = [h for h in profiles if h.ram_mb >= self._min_ram and h.cores >= self._min_cores]
        if not profiles:
            raise NoSuchElementError(
                f"no hardware profile matched id={self._hardware_id} "
                f"min_ram={self._min_ram} min_cores={self._min_cores}"
            )
        if self._hardware_order == "fastest":
            return max(profiles, key=lambda h: (h.compute_units, h.ram_mb))
        if self._hardware_order == "biggest":
            return max(profiles, key=lambda h: (h.cores, h.ram_mb, h.compute_units))
        return min(profiles, key=lambda h: (h.cores, h.ram_mb, h.id))

    def _describe_image_criteria(self) -> str:
        criteria = {
            "id": self._image_id,
            "os_family": self._os_family.value if self._os_family else None,
            "os_version": self._os_version_pattern,
            "name": self._image_name_pattern,
        }
        return ", ".join(f"{k}={v}" for k, v in criteria.items() if v is not None) or "any"
