"""Helpers shared by the VM and the builtins for working with language values.

A value is one of: number (float), string, boolean, None, list, or a dict
with string keys. Integers coming from the host are accepted wherever a
number is expected.
"""
import copy
import decimal


def is_number(value):
    # bool is an int subclass in Python but never a number here
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_integral(value):
    return is_number(value) and float(value).is_integer()


def type_name(value):
    if value is None:
        return "None"
    if isinstance(value, bool):
        return "boolean"
    if is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "list"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def is_truthy(value):
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if is_number(value):
        return value != 0
    if isinstance(value, (str, list, dict)):
        return len(value) > 0
    return True


def values_equal(a, b):
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if is_number(a) and is_number(b):
        return float(a) == float(b)
    if isinstance(a, list) and isinstance(b, list):
        return len(a) == len(b) and all(values_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, dict) and isinstance(b, dict):
        if a.keys() != b.keys():
            return False
        return all(values_equal(a[k], b[k]) for k in a)
    if type(a) is not type(b):
        return False
    return a == b


def normalize(value):
    """Turn host values into language values (ints become floats, tuples lists)."""
    if isinstance(value, bool) or value is None or isinstance(value, str):
        return value
    if is_number(value):
        return float(value)
    if isinstance(value, (list, tuple)):
        return [normalize(v) for v in value]
    if isinstance(value, dict):
        return {str(k): normalize(v) for k, v in value.items()}
    return value


def copy_value(value):
    if isinstance(value, (list, dict)):
        return copy.deepcopy(value)
    return value


def format_number(value):
    value = float(value)
    if value.is_integer():
        return str(int(value))
    text = repr(value)
    if "e" in text:
        # the lexer has no exponent syntax
        return format(decimal.Decimal(text), "f")
    return text


def format_value(value, nested=False):
    if value is None:
        return "None"
    if isinstance(value, bool):
        return "True" if value else "False"
    if is_number(value):
        return format_number(value)
    if isinstance(value, str):
        return repr(value) if nested else value
    if isinstance(value, list):
        return "[" + ", ".join(format_value(v, nested=True) for v in value) + "]"
    if isinstance(value, dict):
        items = ", ".join(f"{k!r}: {format_value(v, nested=True)}" for k, v in value.items())
        return "{" + items + "}"
    return str(value)
