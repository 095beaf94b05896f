from __future__ import annotations

import typing as t

from jinja2 import Environment, StrictUndefined, nodes

if t.TYPE_CHECKING:
    CallNames = t.Tuple[t.Tuple[str, ...], nodes.Call]


def environment(**kwargs: t.Any) -> Environment:
    extensions = kwargs.pop("extensions", [])
    extensions.append("jinja2.ext.do")
    extensions.append("jinja2.ext.loopcontrols")
    return Environment(extensions=extensions, **kwargs)


ENVIRONMENT = environment()


def strict_environment() -> Environment:
    """A fresh environment that fails on undefined names, used to render model queries."""
    return environment(undefined=StrictUndefined)


def call_name(node: nodes.Expr) -> t.Tuple[str, ...]:
    if isinstance(node, nodes.Name):
        return (node.name,)
    if isinstance(node, nodes.Const):
        return (f"'{node.value}'",)
    if isinstance(node, nodes.Getattr):
        return call_name(node.node) + (node.attr,)
    if isinstance(node, (nodes.Getitem, nodes.Call)):
        return call_name(node.node)
    return ()


def find_call_names(node: nodes.Node, vars_in_scope: t.Set[str]) -> t.Iterator[CallNames]:
    vars_in_scope = vars_in_scope.copy()
    for child_node in node.iter_child_nodes():
        if "target" in child_node.fields:
            target = getattr(child_node, "target")
            if isinstance(target, nodes.Name):
                vars_in_scope.add(target.name)
            elif isinstance(target, nodes.Tuple):
                for item in target.items:
                    if isinstance(item, nodes.Name):
                        vars_in_scope.add(item.name)
        elif isinstance(child_node, nodes.Macro):
            for arg in child_node.args:
                vars_in_scope.add(arg.name)
        elif isinstance(child_node, nodes.Call):
            name = call_name(child_node)
            if name and name[0][0] != "'" and name[0] not in vars_in_scope:
                yield (name, child_node)
        yield from find_call_names(child_node, vars_in_scope)


def extract_call_names(jinja_str: str) -> t.List[CallNames]:
    return list(find_call_names(ENVIRONMENT.parse(jinja_str), set()))


def constant_call_args(
    call: nodes.Call,
) -> t.Optional[t.Tuple[t.List[t.Any], t.Dict[str, t.Any]]]:
    """Returns the positional and keyword arguments of a call if all of them are constants."""
    args = []
    for arg in call.args:
        if not isinstance(arg, nodes.Const):
            return None
        args.append(arg.value)

    kwargs = {}
    for kwarg in call.kwargs:
        if isinstance(kwarg.value, nodes.Const):
            kwargs[kwarg.key] = kwarg.value.value
        elif isinstance(kwarg.value, nodes.List) and all(
            isinstance(item, nodes.Const) for item in kwarg.value.items
        ):
            kwargs[kwarg.key] = [item.value for item in kwarg.value.items]  # type: ignore
        else:
            return None

    if call.dyn_args or call.dyn_kwargs:
        return None

    return args, kwargs
