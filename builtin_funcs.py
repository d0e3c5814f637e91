import math

from values import copy_value, format_value, is_integral, is_number, is_truthy, type_name, values_equal


BUILTINS = {}  # name -> (fn, min_args, max_args)


def builtin(name, min_args, max_args=None):
    def register(fn):
        BUILTINS[name] = (fn, min_args, min_args if max_args is None else max_args)
        return fn
    return register


def check_arity(name, args):
    _fn, lo, hi = BUILTINS[name]
    if lo <= len(args) <= hi:
        return
    if lo == hi:
        want = f"{lo} argument" + ("" if lo == 1 else "s")
    elif hi == lo + 1:
        want = f"{lo} or {hi} arguments"
    else:
        want = f"{lo} to {hi} arguments"
    raise TypeError(f"{name}() takes {want}, got {len(args)}")


def call_builtin(vm, name, args):
    check_arity(name, args)
    fn, _lo, _hi = BUILTINS[name]
    return fn(vm, args)


def _need_list(name, value, position="argument"):
    if not isinstance(value, list):
        raise TypeError(f"{name}() {position} must be a list, not {type_name(value)}")
    return value


def _need_str(name, value, position="argument"):
    if not isinstance(value, str):
        raise TypeError(f"{name}() {position} must be a string, not {type_name(value)}")
    return value


def _need_number(name, value, position="argument"):
    if not is_number(value):
        raise TypeError(f"{name}() {position} must be a number, not {type_name(value)}")
    return float(value)


def _need_int(name, value, position="argument"):
    if not is_integral(value):
        raise TypeError(f"{name}() {position} must be a whole number")
    return int(value)


def _numbers(name, values):
    return [_need_number(name, v, "items") for v in values]


# ---------- general ----------

@builtin("len", 1)
def _len(vm, args):
    (x,) = args
    if isinstance(x, (list, str, dict)):
        return float(len(x))
    raise TypeError(f"len() needs a list, string or object, not {type_name(x)}")


@builtin("print", 0, 255)
def _print(vm, args):
    vm.write_output(" ".join(format_value(a) for a in args))
    return None


@builtin("str", 1)
def _str(vm, args):
    return format_value(args[0])


@builtin("bool", 1)
def _bool(vm, args):
    return is_truthy(args[0])


@builtin("int", 1)
def _int(vm, args):
    (x,) = args
    if isinstance(x, bool):
        return 1.0 if x else 0.0
    if is_number(x):
        return float(math.trunc(x))
    if isinstance(x, str):
        try:
            return float(int(x.strip()))
        except ValueError:
            raise ValueError(f"cannot turn {x!r} into a whole number") from None
    raise TypeError(f"int() needs a number, string or boolean, not {type_name(x)}")


@builtin("float", 1)
def _float(vm, args):
    (x,) = args
    if isinstance(x, bool):
        return 1.0 if x else 0.0
    if is_number(x):
        return float(x)
    if isinstance(x, str):
        try:
            return float(x.strip())
        except ValueError:
            raise ValueError(f"cannot turn {x!r} into a number") from None
    raise TypeError(f"float() needs a number, string or boolean, not {type_name(x)}")


@builtin("range", 1, 3)
def _range(vm, args):
    bounds = [_need_int("range", a) for a in args]
    if len(bounds) == 1:
        bounds = [0] + bounds
    if len(bounds) == 3 and bounds[2] == 0:
        raise ValueError("range() step cannot be zero")
    return [float(i) for i in range(*bounds)]


# ---------- randomness (seeded per VM so runs can be replayed) ----------

@builtin("random", 0)
def _random(vm, args):
    return vm.rng.random()


@builtin("randint", 2)
def _randint(vm, args):
    lo = _need_int("randint", args[0], "first argument")
    hi = _need_int("randint", args[1], "second argument")
    if lo > hi:
        raise ValueError("randint() first argument must not be bigger than the second")
    return float(vm.rng.randint(lo, hi))


# ---------- lists ----------

@builtin("append", 2)
def _append(vm, args):
    _need_list("append", args[0], "first argument").append(copy_value(args[1]))
    return None


@builtin("pop", 1, 2)
def _pop(vm, args):
    items = _need_list("pop", args[0])
    if not items:
        raise IndexError("pop() from an empty list")
    if len(args) == 1:
        return items.pop()
    index = _need_int("pop", args[1], "index")
    if not -len(items) <= index < len(items):
        raise IndexError(f"pop() index {index} is out of range")
    return items.pop(index)


@builtin("insert", 3)
def _insert(vm, args):
    items = _need_list("insert", args[0], "first argument")
    index = _need_int("insert", args[1], "index")
    if not 0 <= index <= len(items):
        raise IndexError(f"insert() index {index} is out of range (0-{len(items)})")
    items.insert(index, copy_value(args[2]))
    return None


@builtin("sort", 1)
def _sort(vm, args):
    items = _need_list("sort", args[0])
    if all(is_number(v) for v in items):
        items.sort()
    elif all(isinstance(v, str) for v in items):
        items.sort()
    else:
        raise TypeError("sort() needs a list of only numbers or only strings")
    return None


@builtin("reverse", 1)
def _reverse(vm, args):
    _need_list("reverse", args[0]).reverse()
    return None


@builtin("index", 2)
def _index(vm, args):
    seq, value = args
    if isinstance(seq, str):
        return float(seq.find(_need_str("index", value, "second argument")))
    for i, item in enumerate(_need_list("index", seq, "first argument")):
        if values_equal(item, value):
            return float(i)
    return -1.0


@builtin("count", 2)
def _count(vm, args):
    seq, value = args
    if isinstance(seq, str):
        return float(seq.count(_need_str("count", value, "second argument")))
    return float(sum(1 for item in _need_list("count", seq, "first argument") if values_equal(item, value)))


@builtin("clear", 1)
def _clear(vm, args):
    (target,) = args
    if not isinstance(target, (list, dict)):
        raise TypeError(f"clear() needs a list or object, not {type_name(target)}")
    target.clear()
    return None


# ---------- math ----------

@builtin("abs", 1)
def _abs(vm, args):
    return abs(_need_number("abs", args[0]))


def _pick(name, args, chooser):
    values = args[0] if len(args) == 1 and isinstance(args[0], list) else args
    if not values:
        raise ValueError(f"{name}() of an empty list")
    return chooser(_numbers(name, values))


@builtin("min", 1, 255)
def _min(vm, args):
    return _pick("min", args, min)


@builtin("max", 1, 255)
def _max(vm, args):
    return _pick("max", args, max)


@builtin("sum", 1)
def _sum(vm, args):
    return float(sum(_numbers("sum", _need_list("sum", args[0]))))


@builtin("round", 1, 2)
def _round(vm, args):
    x = _need_number("round", args[0])
    # halves round up (2.5 -> 3, -2.5 -> -2), not to even
    if len(args) == 1:
        return float(math.floor(x + 0.5))
    digits = _need_int("round", args[1], "digits")
    if digits < 0:
        raise ValueError("round() digits must not be negative")
    factor = 10 ** digits
    return math.floor(x * factor + 0.5) / factor


@builtin("sqrt", 1)
def _sqrt(vm, args):
    x = _need_number("sqrt", args[0])
    if x < 0:
        raise ValueError("sqrt() of a negative number")
    return math.sqrt(x)


@builtin("pow", 2)
def _pow(vm, args):
    base = _need_number("pow", args[0], "base")
    exp = _need_number("pow", args[1], "exponent")
    return power(base, exp)


def power(base, exp):
    if base == 0 and exp < 0:
        raise ZeroDivisionError("cannot raise zero to a negative power")
    result = base ** exp
    if isinstance(result, complex):
        raise ValueError("result is not a real number")
    return float(result)


# ---------- strings ----------

@builtin("upper", 1)
def _upper(vm, args):
    return _need_str("upper", args[0]).upper()


@builtin("lower", 1)
def _lower(vm, args):
    return _need_str("lower", args[0]).lower()


@builtin("strip", 1)
def _strip(vm, args):
    return _need_str("strip", args[0]).strip()


@builtin("split", 1, 2)
def _split(vm, args):
    s = _need_str("split", args[0], "first argument")
    if len(args) == 1:
        return s.split()
    sep = _need_str("split", args[1], "separator")
    if sep == "":
        raise ValueError("split() separator cannot be empty")
    return s.split(sep)


@builtin("join", 1, 2)
def _join(vm, args):
    items = _need_list("join", args[0], "first argument")
    sep = format_value(args[1]) if len(args) == 2 else ""
    return sep.join(format_value(v) for v in items)


@builtin("replace", 3)
def _replace(vm, args):
    s, old, new = (_need_str("replace", a) for a in args)
    return s.replace(old, new)


@builtin("find", 2)
def _find(vm, args):
    s = _need_str("find", args[0], "first argument")
    return float(s.find(_need_str("find", args[1], "second argument")))


@builtin("startswith", 2)
def _startswith(vm, args):
    return _need_str("startswith", args[0]).startswith(_need_str("startswith", args[1]))


@builtin("endswith", 2)
def _endswith(vm, args):
    return _need_str("endswith", args[0]).endswith(_need_str("endswith", args[1]))
