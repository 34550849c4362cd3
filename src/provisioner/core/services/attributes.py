from typing import Literal, overload

from src.provisioner.core.errors import ConfigurationError
from src.provisioner.core.models.identity import LoginRequest


class AttributeReader:
    """Reads logical attributes (``userid``, ``username``...) from a login request.

    Logical names are mapped to the identity provider's attribute names by
    the ``attributes`` configuration section.
    """

    def __init__(self, mapping: dict[str, str]):
        self._mapping = {k.lower(): v for k, v in mapping.items()}

    def source_name(self, name: str) -> str:
        try:
            return self._mapping[name.lower()]
        except KeyError:
            raise ConfigurationError(f"No attribute mapping for '{name}'") from None

    @overload
    def get(self, request: LoginRequest, name: str, kind: Literal["string"] = ...) -> str: ...

    @overload
    def get(self, request: LoginRequest, name: str, kind: Literal["array"]) -> list[str]: ...

    def get(self, request: LoginRequest, name: str, kind: str = "string") -> str | list[str]:
        """Return the attribute as a space-joined string or as the list of values.

        Raises:
            ConfigurationError: the name is unmapped or the attribute is absent
        """
        source = self.source_name(name)
        values = request.attributes.get(source)
        if values is None:
            raise ConfigurationError(
                f"Attribute '{source}' (for '{name}') is missing from the login request"
            )
        if kind == "array":
            return list(values)
        if kind == "string":
            return " ".join(values)
        raise ValueError(f"Unknown attribute kind: {kind}")
