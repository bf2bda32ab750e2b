"""
Record models for xmlstore.

A record value is either a leaf holding text or a node holding named child
values. The codec works on plain nested dictionaries (the decoded record
shape callers see); these models give the same data a validated, typed form.
"""

from typing import Annotated, Any, Dict, Literal, Mapping, Optional, Union
from pydantic import BaseModel, Field


class Leaf(BaseModel):
    """
    A field holding plain text.
    """

    kind: Literal["leaf"] = "leaf"

    text: str = Field(
        default="",
        description="The text content of the field element"
    )


class Node(BaseModel):
    """
    A field holding nested child fields.
    """

    kind: Literal["node"] = "node"

    children: Dict[str, "RecordValue"] = Field(
        default_factory=dict,
        description="Child fields keyed by element name"
    )


RecordValue = Annotated[Union[Leaf, Node], Field(discriminator="kind")]

# Enable forward references for the self-referencing node
Node.model_rebuild()


def scalar_text(value: Any) -> str:
    """
    Return the element text stored for a scalar field value.

    None is empty, True is '1' and False is empty; everything else goes
    through str().
    """
    if value is None or value is False:
        return ""
    if value is True:
        return "1"
    return str(value)


def value_from_decoded(value: Any) -> Union[Leaf, Node]:
    """
    Convert one decoded field value into its model form.

    Args:
        value: A string (or other scalar) or a nested mapping

    Returns:
        A Leaf for scalars and empty mappings, a Node for other mappings
    """
    if isinstance(value, Mapping):
        # An empty element reads back as text, not as a nested field
        if not value:
            return Leaf(text="")
        return Node(children={name: value_from_decoded(child) for name, child in value.items()})
    return Leaf(text=scalar_text(value))


def value_to_decoded(value: Union[Leaf, Node]) -> Union[str, Dict[str, Any]]:
    """Convert a model field value back into the decoded shape."""
    if isinstance(value, Node):
        return {name: value_to_decoded(child) for name, child in value.children.items()}
    return value.text


class Record(BaseModel):
    """
    One persisted record: its XML attributes and its field tree.
    """

    attributes: Dict[str, str] = Field(
        default_factory=dict,
        description="Attributes of the record element, always including 'id' once stored"
    )

    children: Dict[str, RecordValue] = Field(
        default_factory=dict,
        description="Field elements of the record keyed by element name"
    )

    @property
    def id(self) -> Optional[int]:
        """The record identifier, None before the record is stored."""
        raw = self.attributes.get("id")
        if raw is None or not raw.isdigit():
            return None
        return int(raw)

    def get(self, *path: str) -> Optional[str]:
        """
        Get the text of a field by its path.

        Args:
            path: Field names descending from the record root

        Returns:
            The leaf text, or None if the path does not end at a leaf
        """
        values: Dict[str, Union[Leaf, Node]] = self.children
        current: Optional[Union[Leaf, Node]] = None
        for name in path:
            if name not in values:
                return None
            current = values[name]
            values = current.children if isinstance(current, Node) else {}
        if isinstance(current, Leaf):
            return current.text
        return None

    @classmethod
    def from_decoded(cls, data: Mapping[str, Any]) -> "Record":
        """
        Build a record from the decoded dictionary shape.

        Args:
            data: Mapping with an optional 'attributes' mapping plus field keys

        Returns:
            The equivalent Record
        """
        attributes = data.get("attributes") or {}
        return cls(
            attributes={str(name): str(value) for name, value in attributes.items()},
            children={
                name: value_from_decoded(value)
                for name, value in data.items()
                if name != "attributes"
            }
        )

    def to_decoded(self) -> Dict[str, Any]:
        """Return the record in the decoded dictionary shape."""
        result: Dict[str, Any] = {}
        if self.attributes:
            result["attributes"] = dict(self.attributes)
        for name, value in self.children.items():
            result[name] = value_to_decoded(value)
        return result


class ComplexField(BaseModel):
    """
    Descriptor for one element written by the comment/CDATA aware encoder.
    """

    comment: Optional[str] = Field(
        None,
        description="Comment emitted before the element"
    )

    value: Optional[str] = Field(
        None,
        description="Text of the element, written as CDATA when it contains markup characters"
    )

    children: Optional[Dict[str, Any]] = Field(
        None,
        description="Nested fields written with the plain encoder"
    )
