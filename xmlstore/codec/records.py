"""
Record codec for xmlstore.

This module maps between XML elements and the decoded record shape: a
dictionary with an optional 'attributes' mapping plus one key per child
element, whose value is either the element text or a nested dictionary.
"""

from typing import Any, Dict, Mapping, Union

from lxml import etree

from ..models import ComplexField, Record, scalar_text


def local_name(element: etree._Element) -> str:
    """Return the tag of an element without its namespace."""
    return etree.QName(element).localname


def text_content(element: etree._Element) -> str:
    """
    Return the direct text of an element.

    Text split around comments or processing instructions is joined back
    together; CDATA sections read as their plain content.
    """
    parts = [element.text or ""]
    for child in element:
        if not isinstance(child.tag, str):
            parts.append(child.tail or "")
    return "".join(parts)


class RecordCodec:
    """
    Converts record elements to dictionaries and back.
    """

    def __init__(self, record_tag: str):
        """
        Initialize the codec.

        Args:
            record_tag: Tag name of record elements; only these carry attributes
        """
        self.record_tag = record_tag

    def decode(self, element: etree._Element) -> Dict[str, Any]:
        """
        Decode an element into the nested dictionary shape.

        Repeated sibling tags collapse into one key, the last one wins.

        Args:
            element: The element to decode (a record, the meta section, ...)

        Returns:
            The decoded dictionary, empty if the element has no child elements
            and is not an attributed record
        """
        result: Dict[str, Any] = {}

        if local_name(element) == self.record_tag and len(element.attrib):
            result["attributes"] = {str(name): str(value) for name, value in element.attrib.items()}

        result.update(self._decode_children(element))
        return result

    def _decode_children(self, element: etree._Element) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for child in element:
            # Comments and processing instructions
            if not isinstance(child.tag, str):
                continue

            nested = self._decode_children(child)
            if nested:
                result[local_name(child)] = nested
            else:
                result[local_name(child)] = text_content(child)
        return result

    def decode_record(self, element: etree._Element) -> Record:
        """Decode a record element into a Record model."""
        return Record.from_decoded(self.decode(element))

    def build_record(self, data: Union[Mapping[str, Any], Record]) -> etree._Element:
        """
        Build a free standing record element.

        Args:
            data: Decoded record shape or Record; the 'attributes' mapping
                becomes XML attributes, every other key a child element

        Returns:
            The new record element
        """
        if isinstance(data, Record):
            data = data.to_decoded()

        element = etree.Element(self.record_tag)
        for name, value in (data.get("attributes") or {}).items():
            element.set(str(name), str(value))

        self.encode(element, {name: value for name, value in data.items() if name != "attributes"})
        return element

    def encode(self, parent: etree._Element, data: Mapping[str, Any]) -> None:
        """
        Append one child element per key to the parent.

        Args:
            parent: Element receiving the children
            data: Field names mapped to scalars or nested mappings. True is
                written as '1'; None and False give an empty element

        Raises:
            TypeError: If a value is neither a scalar nor a mapping
            ValueError: If a key is not a valid element name
        """
        for name, value in data.items():
            if value is not None and not isinstance(value, (Mapping, str, int, float)):
                raise TypeError(f"Unsupported value for field {name!r}: {type(value).__name__}")

            node = etree.SubElement(parent, name)
            if isinstance(value, Mapping):
                self.encode(node, value)
                continue

            text = scalar_text(value)
            if text:
                node.text = text

    def encode_complex(self, parent: etree._Element, data: Mapping[str, Union[Mapping[str, Any], ComplexField]]) -> None:
        """
        Append elements described by comment/value/children descriptors.

        A comment goes in front of its element. Values containing '<' or '>'
        are written as CDATA sections. Children use the plain encoder. An
        element with neither value nor children is not attached.

        Args:
            parent: Element receiving the nodes
            data: Field names mapped to descriptors
        """
        for name, descriptor in data.items():
            if isinstance(descriptor, ComplexField):
                descriptor = descriptor.model_dump(exclude_none=True)

            node = etree.Element(name)
            attach = False

            comment = descriptor.get("comment")
            if comment is not None:
                parent.append(etree.Comment(str(comment)))

            value = descriptor.get("value")
            if value is not None:
                value = str(value)
                if "<" in value or ">" in value:
                    node.text = etree.CDATA(value)
                else:
                    node.text = value
                attach = True

            children = descriptor.get("children")
            if isinstance(children, Mapping):
                self.encode(node, children)
                attach = True

            if attach:
                parent.append(node)
