"""
User-editable mapping tables and the settings export/import bundle.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List

from pydantic import ValidationError as PydanticValidationError

from core.db import MappingStore
from core.exceptions import InvalidSettingsError, ValidationError
from core.logger import setup_logger
from core.merchants import DEFAULT_GROUPS
from core.schema import SettingsBundle

logger = setup_logger(__name__)

SETTINGS_VERSION = "1.0"


class SettingsService:
    """Reads and edits the persisted mapping tables of one user."""

    def __init__(self, store: MappingStore):
        self.store = store

    # ==================== Business name mappings ====================

    def get_custom_mappings(self) -> Dict[str, str]:
        return self.store.get_custom_mappings()

    def rename_business(self, original_names: Iterable[str], new_name: str) -> None:
        """
        Map every raw counterpart name of a business to a new canonical name.

        Args:
            original_names: Raw names that resolved to the business being renamed
            new_name: New display name

        Raises:
            ValidationError: If the new name is blank
        """
        new_name = (new_name or "").strip()
        if not new_name:
            raise ValidationError("Business name cannot be empty")

        mappings = self.store.get_custom_mappings()
        names = [name for name in original_names if name]
        for original_name in names:
            mappings[original_name] = new_name
        self.store.set_custom_mappings(mappings)
        logger.info(f"Mapped {len(names)} raw names to '{new_name}'")

    def delete_custom_mapping(self, original_name: str) -> bool:
        """Remove one custom mapping; returns False if it did not exist."""
        mappings = self.store.get_custom_mappings()
        if original_name not in mappings:
            return False
        del mappings[original_name]
        self.store.set_custom_mappings(mappings)
        return True

    # ==================== Groups ====================

    def get_custom_groups(self) -> List[str]:
        return self.store.get_custom_groups()

    def all_groups(self) -> List[str]:
        """Default groups followed by custom groups."""
        groups = list(DEFAULT_GROUPS)
        for group in self.store.get_custom_groups():
            if group not in groups:
                groups.append(group)
        return groups

    def add_custom_group(self, group_name: str) -> bool:
        """Add a custom group; blank or already-known names are ignored."""
        group_name = (group_name or "").strip()
        if not group_name or group_name in self.all_groups():
            return False

        groups = self.store.get_custom_groups()
        groups.append(group_name)
        self.store.set_custom_groups(groups)
        return True

    def delete_custom_group(self, group_name: str) -> None:
        """Delete a custom group and every business mapping that points to it."""
        groups = [g for g in self.store.get_custom_groups() if g != group_name]
        self.store.set_custom_groups(groups)

        mappings = self.store.get_business_group_mappings()
        remaining = {business: group for business, group in mappings.items() if group != group_name}
        self.store.set_business_group_mappings(remaining)
        logger.info(f"Deleted group '{group_name}' ({len(mappings) - len(remaining)} business mappings removed)")

    def get_business_group_mappings(self) -> Dict[str, str]:
        return self.store.get_business_group_mappings()

    def set_business_group(self, business_name: str, group_name: str) -> None:
        """
        Assign a business to a group.

        Raises:
            ValidationError: If the group is neither a default nor a custom group
        """
        if group_name not in self.all_groups():
            raise ValidationError(
                f"Unknown group: {group_name}",
                details={"available_groups": self.all_groups()},
            )
        mappings = self.store.get_business_group_mappings()
        mappings[business_name] = group_name
        self.store.set_business_group_mappings(mappings)

    # ==================== Export / import ====================

    def export_settings(self) -> SettingsBundle:
        return SettingsBundle(
            version=SETTINGS_VERSION,
            export_date=datetime.now(timezone.utc).isoformat(),
            custom_business_mappings=self.store.get_custom_mappings(),
            custom_groups=self.store.get_custom_groups(),
            business_group_mappings=self.store.get_business_group_mappings(),
        )

    def parse_bundle(self, data: Any) -> SettingsBundle:
        """
        Validate an import payload as a whole.

        Raises:
            InvalidSettingsError: If version is missing or a section is malformed
        """
        if not isinstance(data, dict) or not data.get("version"):
            raise InvalidSettingsError("Invalid settings file format: missing version")

        try:
            return SettingsBundle.model_validate(data)
        except PydanticValidationError as e:
            raise InvalidSettingsError(
                "Invalid settings file format",
                details={"errors": e.errors(include_url=False)},
            )

    def import_settings(self, data: Any) -> bool:
        """
        Apply an exported settings bundle.

        Each present section replaces its table; absent sections are left
        untouched. Nothing is written unless the whole bundle validates.

        Returns:
            True on success, False if the bundle was rejected
        """
        try:
            bundle = self.parse_bundle(data)
        except InvalidSettingsError as e:
            logger.error(f"Error importing settings: {e.message}")
            return False

        if bundle.custom_business_mappings is not None:
            self.store.set_custom_mappings(bundle.custom_business_mappings)
        if bundle.custom_groups is not None:
            self.store.set_custom_groups(bundle.custom_groups)
        if bundle.business_group_mappings is not None:
            self.store.set_business_group_mappings(bundle.business_group_mappings)

        logger.info(f"Imported settings bundle version {bundle.version}")
        return True
