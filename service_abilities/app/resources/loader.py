"""
Resource loading and authorization for request handlers.

``ResourceLoader`` is the framework-agnostic half of controller integration:
given the request action and params it loads (or builds) the record the
handler works on, or the accessible collection for index-style actions, and
authorizes it against the request's ability. Loaded objects are placed in
``ResourceRequest.state`` under the instance name (``project``) or the
collection name (``projects``).
"""

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from shared.errors import AccessDenied, ImplementationRemoved, RecordNotFound, Uncompilable
from shared.logging import get_logger
from ..ability import Ability, REMOVED_OPTIONS
from ..persistence.base import PersistenceAdapter
from ..query.compiler import accessible_by
from ..query.filters import Comparison
from ..rules.models import ConditionOperator


LOADER_OPTIONS = {
    "class_", "instance_name", "id_param", "find_by", "collection", "new",
    "parent", "through", "through_association", "shallow", "singleton",
    "params", "params_key",
}

BEHAVIORS = ("load", "authorize")


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


def underscore(word: str) -> str:
    return re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "_", word).lower()


def singularize(word: str) -> str:
    if word.endswith("ies"):
        return word[:-3] + "y"
    if word.endswith(("ses", "xes")):
        return word[:-2]
    if word.endswith("s") and not word.endswith("ss"):
        return word[:-1]
    return word


def pluralize(word: str) -> str:
    if word.endswith("y") and word[-2:-1] not in "aeiou":
        return word[:-1] + "ies"
    if word.endswith(("s", "x")):
        return word + "es"
    return word + "s"


def controller_path(controller: str) -> List[str]:
    """``Admin::ProjectsController`` and ``admin/projects`` -> ['admin', 'projects']."""
    segments = [s for s in re.split(r"/|::", controller) if s]
    if segments and segments[-1].endswith("Controller"):
        segments[-1] = segments[-1][:-len("Controller")]
    return [underscore(s) for s in segments]


@dataclass
class SkipConfig:
    """Per-handler opt-outs, keyed by behavior then by resource name.

    ``skip("load")`` skips loading for the unnamed resource on every action;
    ``only``/``except_`` narrow it to some actions.
    """
    rules: Dict[str, Dict[Optional[str], Dict[str, Any]]] = field(
        default_factory=lambda: {behavior: {} for behavior in BEHAVIORS}
    )

    def skip(self, behavior: str, name: Optional[str] = None,
             only: Any = None, except_: Any = None) -> "SkipConfig":
        if behavior not in BEHAVIORS:
            raise ValueError(f"behavior must be one of {BEHAVIORS}, got {behavior!r}")
        options: Dict[str, Any] = {}
        if only is not None:
            options["only"] = only
        if except_ is not None:
            options["except"] = except_
        self.rules.setdefault(behavior, {})[name] = options
        return self

    def skip_load_and_authorize(self, name: Optional[str] = None,
                                only: Any = None, except_: Any = None) -> "SkipConfig":
        for behavior in BEHAVIORS:
            self.skip(behavior, name, only=only, except_=except_)
        return self

    def skips(self, behavior: str, name: Optional[str], action: str) -> bool:
        by_name = self.rules.get(behavior, {})
        if name not in by_name:
            return False
        options = by_name[name]
        if not options:
            return True
        if "except" in options and action not in _as_list(options["except"]):
            return True
        return action in _as_list(options.get("only"))


@dataclass
class ResourceRequest:
    """What the loader needs from the handler it serves.

    ``helpers`` stands in for handler methods: parent lookups such as
    ``category`` and params builders such as ``project_params``.
    """
    controller: str
    action: str
    ability: Ability
    params: Dict[str, Any] = field(default_factory=dict)
    state: Dict[str, Any] = field(default_factory=dict)
    helpers: Dict[str, Callable[[], Any]] = field(default_factory=dict)


class ResourceLoader:
    """Loads and authorizes the resource behind one request."""

    def __init__(self, request: ResourceRequest, resource_name: Optional[str] = None, /, *,
                 persistence: PersistenceAdapter,
                 resource_types: Optional[Mapping[str, type]] = None,
                 skip_config: Optional[SkipConfig] = None,
                 **options):
        for option in options:
            if option in REMOVED_OPTIONS:
                raise ImplementationRemoved(option)
        unknown = set(options) - LOADER_OPTIONS
        if unknown:
            raise TypeError(f"unexpected options: {', '.join(sorted(unknown))}")

        self.logger = get_logger("abilities.resource_loader")
        self.request = request
        self.persistence = persistence
        self.resource_types = dict(resource_types or {})
        self.skip_config = skip_config or SkipConfig()
        self.options = options
        self.given_name = resource_name
        path = controller_path(request.controller)
        self.namespace = path[:-1]
        self.controller_name = singularize(path[-1]) if path else ""
        self.name = resource_name or self.controller_name

    # Names

    @property
    def ability(self) -> Ability:
        return self.request.ability

    @property
    def action(self) -> str:
        return self.request.action

    @property
    def params(self) -> Dict[str, Any]:
        return self.request.params

    @property
    def parent(self) -> bool:
        if "parent" in self.options:
            return bool(self.options["parent"])
        return self.given_name is not None and self.given_name != self.controller_name

    @property
    def instance_name(self) -> str:
        return self.options.get("instance_name") or self.name

    @property
    def collection_name(self) -> str:
        return pluralize(self.instance_name)

    @property
    def new_actions(self) -> List[str]:
        return ["new", "create"] + _as_list(self.options.get("new"))

    @property
    def collection_actions(self) -> List[str]:
        return ["index"] + _as_list(self.options.get("collection"))

    @property
    def resource_class(self) -> Optional[type]:
        if "class_" in self.options:
            option = self.options["class_"]
            if option is False:
                return None
            if isinstance(option, type):
                return option
            return option(self.request)
        for key in ("/".join(self.namespace + [self.name]), self.name):
            if key in self.resource_types:
                return self.resource_types[key]
        return None

    @property
    def authorization_subject(self) -> Any:
        """Loaded instance, else the class, else the bare resource name."""
        instance = self.resource_instance
        if instance is not None:
            return instance
        return self.resource_class or self.name

    @property
    def authorization_action(self) -> str:
        return "show" if self.parent else self.action

    @property
    def id_param_key(self) -> str:
        if self.options.get("id_param"):
            return self.options["id_param"]
        return f"{self.name}_id" if self.parent else "id"

    @property
    def id_param(self) -> Optional[str]:
        value = self.params.get(self.id_param_key)
        # Always a string, whatever shape the param arrived in
        return None if value is None else str(value)

    # State

    @property
    def resource_instance(self) -> Any:
        if self.load_instance():
            return self.request.state.get(self.instance_name)
        return None

    @resource_instance.setter
    def resource_instance(self, value: Any):
        self.request.state[self.instance_name] = value

    @property
    def collection_instance(self) -> Any:
        return self.request.state.get(self.collection_name)

    @collection_instance.setter
    def collection_instance(self, value: Any):
        self.request.state[self.collection_name] = value

    # Behavior

    def skip(self, behavior: str) -> bool:
        return self.skip_config.skips(behavior, self.given_name, self.action)

    def member_action(self) -> bool:
        if self.action in self.new_actions or self.options.get("singleton"):
            return True
        return self.id_param is not None and self.action not in self.collection_actions

    def load_instance(self) -> bool:
        return self.parent or self.member_action()

    def load_and_authorize_resource(self):
        self.load_resource()
        self.authorize_resource()

    def load_resource(self):
        if self.skip("load"):
            self.logger.debug("Resource loading skipped", resource=self.name, action=self.action)
            return
        if self.load_instance():
            if self.request.state.get(self.instance_name) is None:
                instance = self.load_resource_instance()
                if instance is not None:
                    self.resource_instance = instance
        elif self.collection_instance is None:
            collection = self.load_collection()
            if collection is not None:
                self.collection_instance = collection

    def authorize_resource(self):
        if self.skip("authorize"):
            self.logger.debug("Resource authorization skipped", resource=self.name, action=self.action)
            return
        self.ability.authorize(self.authorization_action, self.authorization_subject)

    def load_resource_instance(self) -> Any:
        if self.resource_class is None:
            return None
        if not self.parent and self.action in self.new_actions:
            return self.build_resource()
        if self.id_param is not None or self.options.get("singleton"):
            return self.find_resource()
        return None

    def load_collection(self) -> Optional[List[Any]]:
        subject_type = self.resource_class
        if subject_type is None:
            return None
        try:
            return accessible_by(self.ability, self.persistence, subject_type,
                                 self.authorization_action, fallback=False)
        except Uncompilable as e:
            self.logger.debug("Collection not loaded", resource=self.name, reason=e.reason)
            return None

    # Parent handling

    def parent_name(self) -> Optional[str]:
        for name in _as_list(self.options.get("through")):
            if self._lookup(name) is not None:
                return name
        return None

    def parent_resource(self) -> Any:
        name = self.parent_name()
        return self._lookup(name) if name else None

    def _lookup(self, name: str) -> Any:
        if self.request.state.get(name) is not None:
            return self.request.state[name]
        helper = self.request.helpers.get(name)
        return helper() if helper else None

    def _association(self, parent: Any) -> Any:
        association = self.options.get("through_association") or pluralize(self.name)
        return getattr(parent, association)

    # Build and find

    def resource_params(self) -> Dict[str, Any]:
        method = self.options.get("params") or f"{self.name}_params"
        if method in self.request.helpers:
            return dict(self.request.helpers[method]() or {})
        for key in self._param_keys():
            value = self.params.get(key)
            if isinstance(value, Mapping):
                return dict(value)
        return {}

    def _param_keys(self) -> Iterable[str]:
        keys = [self.options.get("params_key"), self.options.get("instance_name")]
        cls = self.resource_class
        if cls is not None:
            keys.append("_".join(underscore(part) for part in cls.__qualname__.split(".")))
        keys.append("_".join(self.namespace + [self.name]))
        keys.append(self.name)
        seen = []
        for key in keys:
            if key and key not in seen:
                seen.append(key)
        return seen

    def build_resource(self) -> Any:
        cls = self.resource_class
        attributes = self.ability.attributes_for(self.action, cls)
        attributes.update(self.resource_params())
        resource = cls(**attributes)

        parent = self.parent_resource()
        if parent is not None and not self.options.get("shallow"):
            if self.options.get("singleton"):
                setattr(resource, self.parent_name(), parent)
            else:
                association = self._association(parent)
                if isinstance(association, list):
                    association.append(resource)
        self.logger.debug("Resource built", resource=self.name, attributes=sorted(attributes))
        return resource

    def find_resource(self) -> Any:
        parent = self.parent_resource()
        if parent is None and self.options.get("through") and not self.options.get("shallow"):
            raise AccessDenied(action=self.action, subject=self.resource_class)

        if parent is not None:
            if self.options.get("singleton"):
                return getattr(parent, self.name)
            return self._find_in(self._association(parent))

        cls = self.resource_class
        find_by = self.options.get("find_by")
        if find_by:
            records = self.persistence.execute_filter(
                cls, Comparison(find_by, ConditionOperator.EQUALS, self.id_param)
            )
            if not records:
                raise self._not_found(cls)
            return records[0]
        return self.persistence.find_by_id(cls, self.id_param)

    def _find_in(self, association: Any) -> Any:
        if hasattr(association, "find") and callable(association.find):
            return association.find(self.id_param)
        field_name = self.options.get("find_by") or "id"
        for record in association:
            if str(getattr(record, field_name, None)) == self.id_param:
                return record
        raise self._not_found(self.resource_class)

    def _not_found(self, cls: Optional[type]):
        return RecordNotFound(cls or object, self.id_param)
