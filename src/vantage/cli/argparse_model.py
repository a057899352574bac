# src/vantage/cli/argparse_model.py
from __future__ import annotations

import argparse
import types
from typing import Any, Literal, Union, get_args, get_origin

from pydantic import BaseModel


def _unwrap_optional(tp: Any) -> Any:
    if get_origin(tp) in (Union, types.UnionType):
        args = [a for a in get_args(tp) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return tp


def _literal_choices(tp: Any) -> tuple[Any, ...]:
    if get_origin(tp) is Literal:
        return get_args(tp)
    return ()


def _argparse_type(tp: Any) -> type:
    # Anything richer than a scalar is passed as a string and validated by pydantic.
    if tp in (str, int, float):
        return tp
    return str


def add_model_to_parser(parser: argparse.ArgumentParser, model: type[BaseModel]) -> None:
    """
    Add one `--flag` per field of a pydantic model.

    The parsed namespace is meant for `model_from_namespace`. Booleans become
    `--flag/--no-flag`, Literal fields become choices and list fields take
    any number of values.
    """
    for name, field in model.model_fields.items():
        annotation = _unwrap_optional(field.annotation if field.annotation is not None else Any)
        required = field.is_required()
        default = None if required else field.default
        flag = f"--{name.replace('_', '-')}"
        help_text = field.description or ""

        if annotation is bool:
            parser.add_argument(
                flag,
                dest=name,
                action=argparse.BooleanOptionalAction,
                default=bool(default),
                help=help_text,
            )
            continue

        choices = _literal_choices(annotation)
        if choices:
            parser.add_argument(
                flag,
                dest=name,
                choices=list(choices),
                default=default,
                required=required,
                help=help_text,
            )
            continue

        if get_origin(annotation) is list:
            (item,) = get_args(annotation) or (str,)
            parser.add_argument(
                flag,
                dest=name,
                nargs="*",
                type=_argparse_type(item),
                default=default,
                required=required,
                help=help_text,
            )
            continue

        parser.add_argument(
            flag,
            dest=name,
            type=_argparse_type(annotation),
            default=default,
            required=required,
            help=help_text,
        )


def model_from_namespace(model: type[BaseModel], namespace: argparse.Namespace) -> BaseModel:
    data = {k: v for k, v in vars(namespace).items() if k in model.model_fields}
    return model.model_validate(data)
