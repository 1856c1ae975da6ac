from functools import reduce


def pipe(*funcs):
    """pipe(f, g, h)(x) == h(g(f(x)))"""
    return reduce(lambda f, g: lambda x: g(f(x)), funcs)


def all_of(*predicates):
    """Логическое И предикатов; останавливается на первом ложном"""
    return lambda item: all(p(item) for p in predicates)
