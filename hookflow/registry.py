import ast
import functools
import logging
import types
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from .config import ActionConfig
from .errors import ActionResolutionError

logger = logging.getLogger(__name__)

_MISSING = object()


def lookup(table: Any, path: str) -> Any:
    """Walk a dotted path through nested mappings/attributes, like lodash.get.

    Private names and modules imported by the table are never traversed.
    """
    node = table
    for part in path.split("."):
        if not part or part.startswith("_"):
            return None
        if node is not table and isinstance(node, types.ModuleType):
            return None
        if isinstance(node, Mapping):
            node = node.get(part, _MISSING)
        else:
            node = getattr(node, part, _MISSING)
        if node is _MISSING:
            return None
    return node


def is_call_expression(identifier: str) -> bool:
    return identifier.endswith(")") and "(" in identifier


def _dotted_name(node: ast.AST) -> str:
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return f"{_dotted_name(node.value)}.{node.attr}"
    raise ActionResolutionError("call target must be a dotted method name")


def _argument(node: ast.AST, payload: Dict[str, Any]) -> Any:
    # bare names are payload fields; everything else must be a literal
    if isinstance(node, ast.Name):
        if node.id in payload:
            return payload[node.id]
        if node.id == "data":
            return payload
        raise ActionResolutionError(f"'{node.id}' is not a field of the hook data")
    try:
        return ast.literal_eval(node)
    except (ValueError, TypeError, SyntaxError) as exc:
        raise ActionResolutionError(f"unsupported argument: {ast.dump(node)}") from exc


def parse_call(expression: str, payload: Dict[str, Any]) -> Tuple[str, List[Any], Dict[str, Any]]:
    """Parse ``method.path(arg, key=value)`` into (path, args, kwargs).

    Only dotted callees, literal arguments and payload field names are
    accepted. Nothing in the expression is ever evaluated as code.
    """
    try:
        tree = ast.parse(expression.strip(), mode="eval")
    except SyntaxError as exc:
        raise ActionResolutionError(f"invalid call expression '{expression}': {exc.msg}") from exc
    call = tree.body
    if not isinstance(call, ast.Call):
        raise ActionResolutionError(f"'{expression}' is not a call expression")

    path = _dotted_name(call.func)
    args = []
    for arg in call.args:
        if isinstance(arg, ast.Starred):
            raise ActionResolutionError("starred arguments are not allowed")
        args.append(_argument(arg, payload))
    kwargs = {}
    for kw in call.keywords:
        if kw.arg is None:
            raise ActionResolutionError("** arguments are not allowed")
        kwargs[kw.arg] = _argument(kw.value, payload)
    return path, args, kwargs


class ActionRegistry:
    """Hook name -> ordered action list, bound against a host method table.

    Plain identifiers are resolved once here; call expressions are parsed
    each time they run because their arguments depend on the hook data.
    """

    def __init__(self, actions: Mapping[str, List[Any]], methods: Any = None):
        self.methods = methods if methods is not None else {}
        self._actions: Dict[str, List[ActionConfig]] = {
            name: [self._normalize(action) for action in action_list]
            for name, action_list in actions.items()
        }
        self._handlers: Dict[str, Callable] = {}
        for action_list in self._actions.values():
            for action in action_list:
                if is_call_expression(action.method) or action.method in self._handlers:
                    continue
                handler = lookup(self.methods, action.method)
                if callable(handler):
                    self._handlers[action.method] = handler
                else:
                    logger.warning("Action '%s' does not resolve to a method", action.method)

    @staticmethod
    def _normalize(action: Any) -> ActionConfig:
        if isinstance(action, ActionConfig):
            return action
        if isinstance(action, str):
            return ActionConfig(method=action)
        return ActionConfig.model_validate(action)

    def __contains__(self, name: str) -> bool:
        return self.has(name)

    def has(self, name: str) -> bool:
        return name in self._actions

    def names(self) -> List[str]:
        return list(self._actions)

    def actions_for(self, name: str) -> List[ActionConfig]:
        return list(self._actions.get(name, []))

    def payload_for(self, action: ActionConfig, data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        # action defaults first so the hook's own data wins
        return {**action.data, **(data or {})}

    def bind(self, action: ActionConfig, data: Optional[Dict[str, Any]]) -> Callable[[], Any]:
        """Return a zero-argument callable that performs ``action`` for ``data``."""
        if is_call_expression(action.method):
            # arguments name fields of the hook data itself, not action defaults
            path, args, kwargs = parse_call(action.method, data or {})
            handler = lookup(self.methods, path)
            if not callable(handler):
                raise ActionResolutionError(f"unknown method '{path}'")
            return functools.partial(handler, *args, **kwargs)

        handler = self._handlers.get(action.method)
        if handler is None:
            raise ActionResolutionError(f"unknown method '{action.method}'")
        return functools.partial(handler, self.payload_for(action, data))
