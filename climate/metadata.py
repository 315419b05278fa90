"""
Climate metadata: help and description data keyed by command path.

The payload is produced at build time by a separate tool and shipped with the
program as opaque bytes. It is a UTF-8 JSON document whose nodes look like

    {
        "short": "one-line summary",
        "long": "longer description",
        "aliases": ["rm"],
        "params": ["files"],
        "flags": {"dry_run": "print what would be removed"},
        "children": {"remove": { ...same shape... }}
    }

Every key is optional. The root node describes the root command; children are
keyed by command name, so a command path addresses one node.

Metadata is only used to augment presentation (descriptions, aliases,
positional names in usage); it never decides which command runs.
"""
import json
from collections.abc import Mapping
from types import MappingProxyType

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .faults import MalformedMetadata


class Metadata(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    short: str = ""
    long: str = ""
    aliases: tuple[str, ...] = ()
    params: tuple[str, ...] = ()
    flags: Mapping[str, str] = Field(default_factory=lambda: MappingProxyType({}))
    children: Mapping[str, "Metadata"] = Field(default_factory=lambda: MappingProxyType({}))

    @field_validator("flags", "children", mode="after")
    @classmethod
    def freeze(cls, value):
        return MappingProxyType(dict(value))

    @classmethod
    def decode(cls, payload, /):
        """
        Decode a metadata payload.

        Raises MalformedMetadata when the payload is not valid UTF-8 JSON of the
        documented shape; there is no partial or empty fallback.
        """
        if not isinstance(payload, bytes | bytearray | memoryview):
            raise TypeError("decode() argument must be bytes-like")
        try:
            return cls.model_validate_json(bytes(payload))
        except ValidationError as exception:
            raise MalformedMetadata(f"malformed metadata: {exception}") from exception
        except RecursionError as exception:
            raise MalformedMetadata("malformed metadata: nested too deeply") from exception

    def encode(self):
        """
        Inverse of decode(): compact UTF-8 JSON, empty keys omitted.
        """
        return json.dumps(self._document(), separators=(",", ":"), ensure_ascii=False).encode("utf-8")

    def _document(self):
        document = {
            "short": self.short,
            "long": self.long,
            "aliases": list(self.aliases),
            "params": list(self.params),
            "flags": dict(self.flags),
            "children": {name: child._document() for name, child in self.children.items()},
        }
        return {key: value for key, value in document.items() if value}

    def child(self, name, /):
        """
        Node of the direct child `name`; an empty node when undocumented.
        """
        return self.children.get(name, EMPTY)

    def lookup(self, *path):
        node = self
        for name in path:
            node = node.child(name)
        return node

    def __bool__(self):
        return any((self.short, self.long, self.aliases, self.params, self.flags, self.children))


EMPTY = Metadata()


__all__ = (
    "Metadata",
    "EMPTY",
)
