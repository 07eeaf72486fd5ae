"""Service Registry for principal type resolution.

The ServiceRegistry maps the principal type name found in bundle metadata to
a constructible Python class. It replaces runtime class-by-name lookup with an
explicit table:

1. Classes registered with the @service decorator
2. The bundle's ``registry`` section, mapping a name to the module that
   registers it (null value means background_service.services.{name})
3. A fully qualified import path, 'package.module:ClassName' or
   'package.module.ClassName'

Usage:
    registry = ServiceRegistry(metadata)
    service_class = registry.get_service_class('hello_world')
"""

import importlib
import logging
from typing import Any

from background_service.base_service import ConstructionStyle, construction_style, get_service_class

_log = logging.getLogger("svc.registry")


class FatalConfigurationError(Exception):
    """Packaging or build defect detected at startup. The process cannot continue."""
    pass


class PrincipalClassMissingError(FatalConfigurationError):
    """Raised when bundle metadata has no principal type declaration."""
    pass


class ServiceTypeNotFoundError(FatalConfigurationError):
    """Raised when a principal type name does not resolve to a class."""
    pass


class NotConstructibleError(FatalConfigurationError):
    """Raised when a resolved type cannot be built from the startup arguments."""
    pass


class ServiceRegistry:
    """Registry for principal type name to class resolution.

    Configuration format (bundle.yaml):

        principal_class: mail.fetcher
        registry:
          hello_world: ~                        # -> background_service.services.hello_world
          mail.fetcher: mailsvc.fetcher         # external package

    Attributes:
        registry: Dict mapping service_type to module_path (or None for internal)
        _loaded_modules: Set of already imported modules
    """

    # Default module prefix for bundled example services
    DEFAULT_MODULE_PREFIX = "background_service.services"

    def __init__(self, config: dict[str, Any] | None = None):
        self.registry: dict[str, str | None] = {}
        self._loaded_modules: set[str] = set()

        if config is not None:
            self.registry = config.get("registry", {}) or {}

        _log.debug(f"ServiceRegistry initialized with {len(self.registry)} entries")

    def resolve_module(self, service_type: str) -> str:
        """Resolve service type to the module that registers it.

        Args:
            service_type: The service type identifier (e.g., 'hello_world', 'mail.fetcher')

        Returns:
            Python module path (e.g., 'background_service.services.hello_world')
        """
        module_path = self.registry.get(service_type)
        if module_path is None:
            module_path = f"{self.DEFAULT_MODULE_PREFIX}.{service_type}"
            _log.debug(f"Resolved '{service_type}' via default -> '{module_path}'")
        else:
            _log.debug(f"Resolved '{service_type}' via registry -> '{module_path}'")
        return module_path

    def _import(self, module_path: str) -> Any | None:
        try:
            module = importlib.import_module(module_path)
        except ModuleNotFoundError as e:
            if e.name is None or not (module_path + ".").startswith(e.name + "."):
                _log.error(f"Failed to import module '{module_path}': {e}")
                raise ServiceTypeNotFoundError(f"Module '{module_path}' failed to import: {e}") from e
            _log.debug(f"No module '{module_path}'")
            return None
        except ImportError as e:
            _log.error(f"Failed to import module '{module_path}': {e}")
            raise ServiceTypeNotFoundError(f"Module '{module_path}' failed to import: {e}") from e
        self._loaded_modules.add(module_path)
        return module

    def _from_import_path(self, service_type: str) -> Any | None:
        if ":" in service_type:
            module_path, _, attr = service_type.partition(":")
        elif "." in service_type:
            module_path, _, attr = service_type.rpartition(".")
        else:
            return None

        if not module_path or not attr:
            return None

        module = self._import(module_path)
        if module is None:
            return None

        obj = module
        for part in attr.split("."):
            obj = getattr(obj, part, None)
            if obj is None:
                return None
        return obj

    def get_service_class(self, service_type: str) -> type:
        """Get service class by type.

        Args:
            service_type: The principal type name from bundle metadata

        Returns:
            The resolved class

        Raises:
            ServiceTypeNotFoundError: If the name does not resolve to a class
        """
        service_class = get_service_class(service_type)

        if service_class is None:
            module_path = self.resolve_module(service_type)
            if module_path not in self._loaded_modules:
                _log.debug(f"Importing module '{module_path}' for service type '{service_type}'")
                self._import(module_path)
            service_class = get_service_class(service_type)

        if service_class is None:
            service_class = self._from_import_path(service_type)

        if service_class is None:
            raise ServiceTypeNotFoundError(
                f"Principal class '{service_type}' could not be resolved. Register it with "
                f"@service('{service_type}'), add it to the bundle 'registry' section, "
                f"or use a full import path such as 'package.module:ClassName'"
            )

        return service_class


def check_constructible(cls: Any) -> ConstructionStyle:
    """Validate the construction capability of a resolved principal type.

    Raises:
        NotConstructibleError: If the type can be built neither from the
            argument list nor without arguments
    """
    style = construction_style(cls)
    if style is None:
        name = getattr(cls, "__qualname__", repr(cls))
        raise NotConstructibleError(
            f"'{name}' cannot be constructed from startup arguments. Derive it from "
            f"BackgroundServicable or give it an __init__(self, arguments) constructor"
        )
    return style
