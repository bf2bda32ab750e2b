"""
Base schema interface for xmlstore.

This module defines the abstract interface a document schema must implement.
The schema decides what a freshly created document looks like, where the
records live and what each record element is called.
"""

from abc import ABC, abstractmethod

from lxml import etree


def is_valid_tag_name(name: str) -> bool:
    """
    Check whether a string can be used as an unprefixed element name.

    Uses the same rules lxml applies when creating elements, so every
    field the encoder can write can also be addressed by a query.

    Args:
        name: The candidate element name

    Returns:
        True if the name is a valid XML name without a namespace or prefix
    """
    if not isinstance(name, str):
        return False
    try:
        qname = etree.QName(name)
    except ValueError:
        return False
    return qname.namespace is None


class BaseSchema(ABC):
    """
    Abstract base class for document schemas.

    Each schema supplies the skeleton document written on creation, the
    path to the container element holding the records and the record tag.
    """

    @abstractmethod
    def get_base_xml(self) -> str:
        """
        Return the skeleton document written when a store is created.

        The skeleton must contain a 'meta' element directly under the root
        (with 'ai' and 'last_add' children) and the empty data container.

        Returns:
            The complete XML document as text
        """
        pass

    @abstractmethod
    def get_data_xpath(self) -> str:
        """
        Return the path of the data container, e.g. 'store/items'.

        Returns:
            Slash separated element names from the root to the container
        """
        pass

    @abstractmethod
    def get_data_tag_name(self) -> str:
        """
        Return the tag name of each record element.

        Returns:
            The record element name
        """
        pass

    def get_root_tag(self) -> str:
        """Return the name of the document root element."""
        return self.get_data_xpath().strip("/").split("/")[0]

    def get_container_tag(self) -> str:
        """Return the name of the data container element."""
        return self.get_data_xpath().strip("/").split("/")[-1]
