"""
Simple schema for xmlstore.

This module provides a ready-made schema with a single container directly
under the root element, configurable through the tag names.
"""

from .base import BaseSchema, is_valid_tag_name


class SimpleSchema(BaseSchema):
    """
    Schema for documents shaped like::

        <store>
          <meta><ai>1</ai><last_add/></meta>
          <items>
            <item id="1">...</item>
          </items>
        </store>
    """

    def __init__(self, root_tag: str = "store", container_tag: str = "items", record_tag: str = "item"):
        """
        Initialize the schema.

        Args:
            root_tag: Name of the document root element
            container_tag: Name of the element holding the records
            record_tag: Name of each record element

        Raises:
            ValueError: If a tag name is not a valid element name or clashes with 'meta'
        """
        for tag in (root_tag, container_tag, record_tag):
            if not is_valid_tag_name(tag):
                raise ValueError(f"Invalid tag name: {tag!r}")
        if "meta" in (container_tag, record_tag):
            raise ValueError("'meta' is reserved for the meta section")

        self.root_tag = root_tag
        self.container_tag = container_tag
        self.record_tag = record_tag

    @classmethod
    def from_config(cls, config) -> "SimpleSchema":
        """
        Build a schema from the 'schema' section of a ConfigManager.

        Args:
            config: The configuration manager

        Returns:
            The configured schema
        """
        settings = config.schema_settings
        return cls(
            root_tag=settings.get("root_tag", "store"),
            container_tag=settings.get("container_tag", "items"),
            record_tag=settings.get("record_tag", "item")
        )

    def get_base_xml(self) -> str:
        return (
            '<?xml version="1.0" encoding="UTF-8"?>\n'
            f"<{self.root_tag}>\n"
            "  <meta>\n"
            "    <ai>1</ai>\n"
            "    <last_add/>\n"
            "  </meta>\n"
            f"  <{self.container_tag}/>\n"
            f"</{self.root_tag}>\n"
        )

    def get_data_xpath(self) -> str:
        return f"{self.root_tag}/{self.container_tag}"

    def get_data_tag_name(self) -> str:
        return self.record_tag

    def __repr__(self) -> str:
        return f"SimpleSchema({self.root_tag!r}, {self.container_tag!r}, {self.record_tag!r})"
